"""Resolve the image shown for a package: cached thumbnail or default screenshot."""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .cache import BlobCache, ThumbnailStore
from .defaults import default_file_path
from .fetcher import RemoteFetcher
from .thumbnail import ThumbnailGenerator

logger = logging.getLogger(__name__)


def cache_key(pkg_name: str) -> str:
    """Blob cache key of the raw screenshot of a package."""
    return f"t:screenshot-p:{pkg_name}"


class BlobType(Enum):
    THUMBNAIL = "thumbnail"
    SCREENSHOT = "screenshot"


@dataclass(frozen=True)
class Screenshot:
    """A package and the remote location of its screenshot, if any."""

    pkg_name: str
    source_url: str | None = None

    def __post_init__(self):
        if not self.pkg_name:
            raise ValueError("Package name must not be empty")


class ScreenshotResolver:
    """Serve package screenshots, fetching and thumbnailing them on first use.

    A package is considered processed only when its raw screenshot is in the
    blob cache. Packages without a source URL, and packages whose screenshot
    could not be fetched or decoded, get a default image chosen from the
    package name.
    """

    def __init__(
        self,
        blob_cache: BlobCache,
        thumbnail_store: ThumbnailStore,
        fetcher: RemoteFetcher,
        generator: ThumbnailGenerator,
        default_images_root: str | Path | None = None,
        suppress_errors: bool = True,
    ):
        """Initialize the resolver.

        Args:
            blob_cache: Store for raw screenshot bytes
            thumbnail_store: Store the generator writes thumbnails to
            fetcher: Downloads remote screenshots
            generator: Turns raw screenshots into thumbnails
            default_images_root: Directory with the default screenshots,
                needed to serve default blobs
            suppress_errors: Serve the default image when fetching fails
                (production behaviour). When False the error is raised.
        """
        self.blob_cache = blob_cache
        self.thumbnail_store = thumbnail_store
        self.fetcher = fetcher
        self.generator = generator
        self.default_images_root = Path(default_images_root) if default_images_root is not None else None
        self.suppress_errors = suppress_errors

        # key -> [lock, number of requests holding or waiting for it]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    def resolve_path(self, pkg_name: str, source_url: str | None = None, fetch: bool = True) -> Optional[str]:
        """Relative path of the image to show for a package.

        Args:
            pkg_name: Package name
            source_url: Remote screenshot location, if the package has one
            fetch: Download and thumbnail an uncached screenshot right away.
                When False, an uncached screenshot yields None instead.

        Returns:
            Thumbnail path, default image path, or None if the thumbnail
            is not generated yet and fetch is False
        """
        if self._cached(pkg_name):
            return self.thumbnail_store.relative_path(pkg_name)
        if source_url is None:
            return default_file_path(pkg_name)
        if not fetch:
            return None

        try:
            self._fetch(pkg_name, source_url)
        except Exception as e:
            if not self.suppress_errors:
                raise
            logger.debug(f"No screenshot fetched for: {pkg_name} ({type(e).__name__}: {e})")
            return default_file_path(pkg_name)

        return self.thumbnail_store.relative_path(pkg_name)

    def resolve_blob(
        self,
        pkg_name: str,
        source_url: str | None = None,
        blob_type: BlobType = BlobType.SCREENSHOT,
    ) -> bytes:
        """Image content ready to be served.

        Cached content is served from the stores; otherwise the screenshot
        is downloaded and processed first.

        Args:
            pkg_name: Package name
            source_url: Remote screenshot location, if the package has one
            blob_type: THUMBNAIL for the resized image, SCREENSHOT for the
                original download

        Returns:
            Image bytes
        """
        if self._cached(pkg_name):
            return self._cached_blob(pkg_name, blob_type)
        if source_url is None:
            return self._default_blob(pkg_name)

        try:
            self._fetch(pkg_name, source_url)
            return self._cached_blob(pkg_name, blob_type)
        except Exception as e:
            if not self.suppress_errors:
                raise
            logger.debug(f"No screenshot fetched (blob) for: {pkg_name} ({type(e).__name__}: {e})")
            return self._default_blob(pkg_name)

    def path_for(self, screenshot: Screenshot, fetch: bool = True) -> Optional[str]:
        return self.resolve_path(screenshot.pkg_name, screenshot.source_url, fetch=fetch)

    def blob_for(self, screenshot: Screenshot, blob_type: BlobType = BlobType.SCREENSHOT) -> bytes:
        return self.resolve_blob(screenshot.pkg_name, screenshot.source_url, blob_type)

    def _cached(self, pkg_name: str) -> bool:
        return self.blob_cache.exists(cache_key(pkg_name))

    def _cached_blob(self, pkg_name: str, blob_type: BlobType) -> bytes:
        if blob_type == BlobType.THUMBNAIL:
            return self.thumbnail_store.read(pkg_name)
        return self.blob_cache.read(cache_key(pkg_name))

    def _default_blob(self, pkg_name: str) -> bytes:
        if self.default_images_root is None:
            raise ValueError("No default images directory configured")
        with open(default_file_path(pkg_name, self.default_images_root), "rb") as f:
            return f.read()

    @contextmanager
    def _key_lock(self, key: str):
        """Hold the lock for a cache key; dropped once nobody uses it."""
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _fetch(self, pkg_name: str, source_url: str) -> None:
        """Download, thumbnail and cache the screenshot of a package.

        Concurrent calls for the same package are serialized; whoever comes
        second finds the cache populated and returns without downloading.
        """
        key = cache_key(pkg_name)
        with self._key_lock(key):
            if self.blob_cache.exists(key):
                logger.debug(f"Screenshot for {pkg_name} cached while waiting")
                return

            content = self.fetcher.fetch(source_url)
            self.generator.generate(pkg_name, content)
            # Written last: the cache entry marks the package as processed
            self.blob_cache.write(key, content)
            logger.info(f"Cached screenshot for {pkg_name} ({len(content)} bytes)")
