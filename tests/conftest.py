import io

import pytest
import requests
from PIL import Image

from pkgshot.cache import MemoryBlobCache, ThumbnailStore
from pkgshot.defaults import DefaultImageCategory
from pkgshot.screenshot import ScreenshotResolver
from pkgshot.thumbnail import ThumbnailGenerator


def png_bytes(width: int = 1200, height: int = 800, mode: str = "RGB", color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_response(url: str, status: int = 200, content: bytes = b"", headers: dict | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    response._content = content
    response._content_consumed = True
    response.headers.update(headers or {})
    return response


class FakeSession:
    """Stands in for requests.Session; maps URLs to responses or exceptions."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.calls: list[tuple[str, float]] = []
        self.headers: dict = {}
        self.closed = False

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        outcome = self.routes.get(url)
        if outcome is None:
            raise requests.ConnectionError("Connection refused")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


class FakeFetcher:
    """Counts downloads; returns fixed content or raises a fixed error."""

    def __init__(self, content: bytes = b"", error: Exception | None = None):
        self.content = content
        self.error = error
        self.urls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.content

    def close(self):
        pass


@pytest.fixture
def default_images(tmp_path):
    root = tmp_path / "default-screenshots"
    root.mkdir()
    for category in DefaultImageCategory:
        (root / category.file_name).write_bytes(f"default:{category.name}".encode())
    return root


@pytest.fixture
def thumbnail_store(tmp_path):
    return ThumbnailStore(tmp_path / "public" / "images")


@pytest.fixture
def make_resolver(thumbnail_store, default_images):
    def factory(fetcher, suppress_errors=True, blob_cache=None):
        return ScreenshotResolver(
            blob_cache=blob_cache if blob_cache is not None else MemoryBlobCache(),
            thumbnail_store=thumbnail_store,
            fetcher=fetcher,
            generator=ThumbnailGenerator(thumbnail_store),
            default_images_root=default_images,
            suppress_errors=suppress_errors,
        )

    return factory
