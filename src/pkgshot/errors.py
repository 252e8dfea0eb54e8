"""Exceptions raised while fetching, generating and caching screenshots."""


class PkgshotError(Exception):
    """Base class for all pkgshot errors."""


class FetchError(PkgshotError):
    """Remote screenshot could not be retrieved."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class NetworkTimeout(FetchError):
    """The remote host did not answer within the configured timeout."""


class NetworkFailure(FetchError):
    """Connection, HTTP status or transport level failure."""


class RedirectUnrecoverable(FetchError):
    """A redirect target was found but retrieving it failed too."""


class ImageDecodeError(PkgshotError):
    """Fetched bytes are not an image Pillow can decode."""


class CacheError(PkgshotError):
    """Base class for blob cache and thumbnail store failures."""


class CacheReadFailure(CacheError):
    pass


class CacheWriteFailure(CacheError):
    pass
