"""Blob cache for raw screenshots and file store for generated thumbnails."""
import os
import json
import time
import hashlib
import logging
import tempfile
import threading
from pathlib import Path
from typing import Protocol
from platformdirs import user_cache_dir

from .errors import CacheReadFailure, CacheWriteFailure

logger = logging.getLogger(__name__)

# XDG-compliant cache directory
# Can be overridden with PKGSHOT_CACHE_DIR environment variable
DEFAULT_CACHE_ROOT = os.environ.get("PKGSHOT_CACHE_DIR") or str(Path(user_cache_dir("pkgshot")) / "blobs")


class BlobCache(Protocol):
    """Key/value store for opaque byte content."""

    def exists(self, key: str) -> bool:
        ...

    def read(self, key: str) -> bytes:
        ...

    def write(self, key: str, blob: bytes) -> None:
        ...


class MemoryBlobCache:
    """In-process blob cache, handy for tests and short-lived processes."""

    def __init__(self):
        self.entries: dict[str, bytes] = {}

    def exists(self, key: str) -> bool:
        return key in self.entries

    def read(self, key: str) -> bytes:
        try:
            return self.entries[key]
        except KeyError:
            raise CacheReadFailure(f"No cache entry for {key!r}") from None

    def write(self, key: str, blob: bytes) -> None:
        self.entries[key] = blob


class DiskBlobCache:
    """Cache raw screenshot bytes on disk, one file per key.

    The blob files are the source of truth for what is cached, so several
    processes can share one directory. ``metadata.json`` only carries the
    bookkeeping for LRU eviction; it is merged with the copy on disk before
    every save.
    """

    def __init__(
        self,
        cache_dir: str | None = None,
        max_files: int | None = None,
        max_size_mb: int | None = None,
        access_save_interval: float = 60.0
    ):
        """Initialize blob cache.

        Args:
            cache_dir: Directory to store cached blobs (defaults to XDG cache dir/blobs)
            max_files: Maximum number of blobs to keep (default: unlimited)
            max_size_mb: Maximum cache size in megabytes (default: unlimited)
            access_save_interval: Minimum seconds between saves triggered only
                by cache hits (default: 60)
        """
        if cache_dir is None:
            cache_dir = DEFAULT_CACHE_ROOT
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.metadata_file = self.cache_dir / "metadata.json"
        self.metadata: dict = {}
        self.max_files = max_files
        self.max_size_bytes = max_size_mb * 1024 * 1024 if max_size_mb is not None else None
        self.access_save_interval = access_save_interval
        self._last_saved = 0.0
        self._lock = threading.Lock()
        self.load_metadata()

    def _read_metadata_file(self) -> dict:
        if not self.metadata_file.exists():
            return {}
        try:
            with open(self.metadata_file, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"BlobCache metadata unreadable, starting empty: {e}")
            return {}

    def load_metadata(self) -> None:
        """Load cache metadata from disk."""
        with self._lock:
            self.metadata = self._read_metadata_file()

    def save_metadata(self) -> None:
        """Merge metadata with the copy on disk and replace it atomically.

        Must be called with the lock held.
        """
        for file_name, theirs in self._read_metadata_file().items():
            mine = self.metadata.get(file_name)
            if mine is None:
                self.metadata[file_name] = theirs
                continue
            newest = max(mine, theirs, key=lambda e: e.get("timestamp", 0))
            newest["last_accessed"] = max(mine.get("last_accessed", 0), theirs.get("last_accessed", 0))
            self.metadata[file_name] = newest

        # Entries whose blob is gone were evicted, possibly by another process
        self.metadata = {
            file_name: entry for file_name, entry in self.metadata.items()
            if (self.cache_dir / file_name).exists()
        }

        self._replace_file(self.metadata_file, json.dumps(self.metadata, indent=2).encode())
        self._last_saved = time.time()

    def _replace_file(self, target: Path, data: bytes) -> None:
        """Write data next to target, then rename it into place."""
        with tempfile.NamedTemporaryFile(dir=self.cache_dir, suffix=".tmp", delete=False) as f:
            tmp_name = f.name
            try:
                f.write(data)
            except OSError:
                f.close()
                os.unlink(tmp_name)
                raise
        try:
            os.replace(tmp_name, target)
        except OSError:
            os.unlink(tmp_name)
            raise

    def _get_file_name(self, key: str) -> str:
        """Generate a filesystem-safe file name from a cache key.

        Args:
            key: Cache key (may contain ':' and other characters)

        Returns:
            Hash-based filename for the cached blob
        """
        key_hash = hashlib.md5(key.encode()).hexdigest()
        return f"{key_hash}.bin"

    def _record_access(self, key: str, file_name: str) -> None:
        """Bump last_accessed for a hit; save at most every access_save_interval."""
        with self._lock:
            now = time.time()
            entry = self.metadata.get(file_name)
            if entry is None:
                # Written by another process since our last save
                try:
                    stat = (self.cache_dir / file_name).stat()
                except OSError:
                    return
                entry = self.metadata[file_name] = {
                    "key": key,
                    "timestamp": stat.st_mtime,
                    "size": stat.st_size
                }
            entry["last_accessed"] = now

            if now - self._last_saved < self.access_save_interval:
                return
            try:
                self.save_metadata()
            except OSError as e:
                logger.warning(f"BlobCache could not save access times: {e}")

    def exists(self, key: str) -> bool:
        """Check whether a blob is cached for the key, counting it as a use."""
        file_name = self._get_file_name(key)
        if not (self.cache_dir / file_name).exists():
            return False
        self._record_access(key, file_name)
        return True

    def read(self, key: str) -> bytes:
        """Read a cached blob.

        Args:
            key: Cache key

        Returns:
            Raw bytes stored under the key

        Raises:
            CacheReadFailure: if the key is not cached or the file can't be read
        """
        file_name = self._get_file_name(key)
        try:
            with open(self.cache_dir / file_name, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            logger.debug(f"BlobCache miss: {key}")
            raise CacheReadFailure(f"No cache entry for {key!r}") from None
        except OSError as e:
            raise CacheReadFailure(f"Could not read cache entry for {key!r}: {e}") from e

        self._record_access(key, file_name)
        logger.debug(f"BlobCache hit: {key} ({len(data)} bytes)")
        return data

    def write(self, key: str, blob: bytes) -> None:
        """Store a blob, replacing any previous content for the key.

        Args:
            key: Cache key
            blob: Raw bytes

        Raises:
            CacheWriteFailure: if the blob or the metadata can't be written
        """
        file_name = self._get_file_name(key)

        try:
            self._replace_file(self.cache_dir / file_name, blob)

            with self._lock:
                now = time.time()
                self.metadata[file_name] = {
                    "key": key,
                    "timestamp": now,
                    "last_accessed": now,
                    "size": len(blob)
                }
                self._enforce_limits()
                self.save_metadata()
        except OSError as e:
            raise CacheWriteFailure(f"Could not write cache entry for {key!r}: {e}") from e

        logger.debug(f"BlobCache set: {key} ({len(blob)} bytes)")

    def _enforce_limits(self) -> None:
        """Remove least recently used blobs if cache exceeds limits.

        Must be called with the lock held.
        """
        if self.max_files is None and self.max_size_bytes is None:
            return

        total_size = sum(entry.get("size", 0) for entry in self.metadata.values())
        num_files = len(self.metadata)

        def over_limits() -> bool:
            if self.max_files is not None and num_files > self.max_files:
                return True
            return self.max_size_bytes is not None and total_size > self.max_size_bytes

        if not over_limits():
            return

        # Sort by last access (LRU)
        sorted_items = sorted(
            self.metadata.items(),
            key=lambda x: x[1].get("last_accessed", 0)
        )

        evicted_count = 0
        evicted_size = 0

        for file_name, entry in sorted_items:
            if not over_limits():
                break

            try:
                (self.cache_dir / file_name).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"BlobCache could not evict {entry.get('key')}: {e}")
                continue
            del self.metadata[file_name]

            file_size = entry.get("size", 0)
            total_size -= file_size
            evicted_size += file_size
            num_files -= 1
            evicted_count += 1

        if evicted_count > 0:
            logger.info(f"BlobCache evicted {evicted_count} files ({evicted_size / 1024 / 1024:.1f} MB) - LRU cleanup")


class ThumbnailStore:
    """Generated thumbnails, addressed by package name under the public images root."""

    def __init__(self, public_root: str | Path):
        """Initialize thumbnail store.

        Args:
            public_root: Directory served as public images; thumbnails live in
                its ``thumbnails`` subdirectory
        """
        self.public_root = Path(public_root)

    def relative_path(self, pkg_name: str) -> str:
        """Path of the thumbnail relative to the public images root.

        Raises:
            ValueError: if the name would leave the thumbnails directory
        """
        if not pkg_name or any(sep in pkg_name for sep in ("/", "\\", "\0")):
            raise ValueError(f"Invalid package name for a thumbnail: {pkg_name!r}")
        return f"thumbnails/{pkg_name}.png"

    def path(self, pkg_name: str) -> Path:
        """Absolute path of the thumbnail file."""
        return self.public_root / self.relative_path(pkg_name)

    def exists(self, pkg_name: str) -> bool:
        return self.path(pkg_name).exists()

    def read(self, pkg_name: str) -> bytes:
        """Read thumbnail bytes.

        Raises:
            CacheReadFailure: if the thumbnail is missing or unreadable
        """
        try:
            with open(self.path(pkg_name), "rb") as f:
                return f.read()
        except OSError as e:
            raise CacheReadFailure(f"Could not read thumbnail for {pkg_name}: {e}") from e

    def write(self, pkg_name: str, blob: bytes) -> Path:
        """Write thumbnail bytes, creating directories as needed.

        Returns:
            Absolute path of the written file

        Raises:
            CacheWriteFailure: if the file can't be written
        """
        thumbnail_file = self.path(pkg_name)
        try:
            thumbnail_file.parent.mkdir(parents=True, exist_ok=True)
            with open(thumbnail_file, "wb") as f:
                f.write(blob)
        except OSError as e:
            raise CacheWriteFailure(f"Could not write thumbnail for {pkg_name}: {e}") from e

        logger.debug(f"Thumbnail stored: {thumbnail_file} ({len(blob)} bytes)")
        return thumbnail_file
