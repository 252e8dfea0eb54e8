"""Thumbnail generation from raw screenshots."""
import io
import logging
from PIL import Image, UnidentifiedImageError

from .cache import ThumbnailStore
from .errors import ImageDecodeError

logger = logging.getLogger(__name__)

THUMBNAIL_WIDTH = 600


class ThumbnailGenerator:
    """Resize screenshots to thumbnails and persist them in a ThumbnailStore."""

    def __init__(self, store: ThumbnailStore, width: int = THUMBNAIL_WIDTH):
        """Initialize the generator.

        Args:
            store: Where generated thumbnails are written
            width: Target width in pixels (default: 600)
        """
        self.store = store
        self.width = width

    def generate(self, pkg_name: str, raw_data: bytes) -> bytes:
        """Create the thumbnail for a package and write it to the store.

        Args:
            pkg_name: Package the screenshot belongs to
            raw_data: Raw image bytes as downloaded

        Returns:
            PNG encoded thumbnail

        Raises:
            ImageDecodeError: raw_data is not a decodable image
        """
        try:
            with Image.open(io.BytesIO(raw_data)) as image:
                image.load()
                thumbnail = self._resize(image)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageDecodeError(f"Could not decode screenshot of {pkg_name}: {e}") from e

        buffer = io.BytesIO()
        thumbnail.save(buffer, format="PNG")
        data = buffer.getvalue()

        self.store.write(pkg_name, data)
        logger.debug(f"Generated thumbnail for {pkg_name}: {thumbnail.width}x{thumbnail.height}")
        return data

    def _resize(self, image: Image.Image) -> Image.Image:
        # Scale to the target width, smaller screenshots are enlarged too
        aspect_ratio = image.height / image.width
        new_height = max(1, round(self.width * aspect_ratio))

        if image.mode not in ("RGB", "RGBA", "L", "LA"):
            image = image.convert("RGBA")

        return image.resize((self.width, new_height), Image.Resampling.LANCZOS)
