"""Runtime settings read from the environment."""
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from platformdirs import user_cache_dir, user_data_dir

from .cache import DiskBlobCache, ThumbnailStore
from .fetcher import DEFAULT_TIMEOUT, RemoteFetcher
from .screenshot import ScreenshotResolver
from .thumbnail import ThumbnailGenerator

logger = logging.getLogger(__name__)

PRODUCTION = "production"


@dataclass(frozen=True)
class Settings:
    cache_dir: Path
    public_images_dir: Path
    default_images_dir: Path
    fetch_timeout: float = DEFAULT_TIMEOUT
    environment: str = PRODUCTION
    debug: bool = False

    @property
    def suppress_errors(self) -> bool:
        """Fall back to default images silently only in production."""
        return self.environment == PRODUCTION

    @property
    def log_level(self) -> str:
        # WARNING for normal use, DEBUG only if PKGSHOT_DEBUG is set
        return "DEBUG" if self.debug else "WARNING"


def load_settings(environ: dict | None = None) -> Settings:
    """Build settings from PKGSHOT_* environment variables.

    Args:
        environ: Mapping to read instead of os.environ

    Returns:
        Settings with XDG-compliant defaults for anything not set
    """
    if environ is None:
        environ = os.environ

    data_root = Path(user_data_dir("pkgshot"))

    timeout = DEFAULT_TIMEOUT
    raw_timeout = environ.get("PKGSHOT_FETCH_TIMEOUT")
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except ValueError:
            logger.warning(f"Ignoring invalid PKGSHOT_FETCH_TIMEOUT={raw_timeout!r}")

    return Settings(
        cache_dir=Path(environ.get("PKGSHOT_CACHE_DIR") or Path(user_cache_dir("pkgshot")) / "blobs"),
        public_images_dir=Path(environ.get("PKGSHOT_PUBLIC_IMAGES") or data_root / "images"),
        default_images_dir=Path(environ.get("PKGSHOT_DEFAULT_IMAGES") or data_root / "default-screenshots"),
        fetch_timeout=timeout,
        environment=(environ.get("PKGSHOT_ENV") or PRODUCTION).strip().lower(),
        debug=bool(environ.get("PKGSHOT_DEBUG")),
    )


def build_resolver(settings: Settings) -> ScreenshotResolver:
    """Wire a resolver backed by the on-disk stores named in settings."""
    thumbnail_store = ThumbnailStore(settings.public_images_dir)
    return ScreenshotResolver(
        blob_cache=DiskBlobCache(str(settings.cache_dir)),
        thumbnail_store=thumbnail_store,
        fetcher=RemoteFetcher(timeout=settings.fetch_timeout),
        generator=ThumbnailGenerator(thumbnail_store),
        default_images_root=settings.default_images_dir,
        suppress_errors=settings.suppress_errors,
    )
