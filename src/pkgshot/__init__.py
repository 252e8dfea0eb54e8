"""Package screenshot and thumbnail resolution."""
from .defaults import DefaultImageCategory, resolve_default_category
from .screenshot import BlobType, Screenshot, ScreenshotResolver

__all__ = [
    "BlobType",
    "DefaultImageCategory",
    "Screenshot",
    "ScreenshotResolver",
    "resolve_default_category",
]
