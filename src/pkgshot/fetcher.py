"""Remote screenshot download with one-shot redirect recovery."""
import re
import logging
from typing import Optional
from urllib.parse import urljoin

import requests

from .errors import FetchError, NetworkTimeout, NetworkFailure, RedirectUnrecoverable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 6.0

URL_REGEX = re.compile(r"https?://\S+")

# Characters that wrap URLs in exception reprs, e.g. "(Caused by ... 'https://x/')"
_URL_TRAILING_JUNK = "'\")]>,;"


def extract_redirect_url(text: str, original_url: str | None = None) -> Optional[str]:
    """Pull a redirect target out of an error message.

    Only used when the transport gives no structured redirect information:
    the last URL in the message is taken as the target.

    Args:
        text: Error message
        original_url: URL that was requested; a message that ends by
            quoting it back carries no redirect target

    Returns:
        The last URL found in the text, or None
    """
    matches = URL_REGEX.findall(text)
    if not matches:
        return None

    candidate = matches[-1].rstrip(_URL_TRAILING_JUNK)
    if not candidate or candidate == original_url:
        return None
    return candidate


class RemoteFetcher:
    """Download raw screenshot bytes over HTTP."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: requests.Session | None = None):
        """Initialize the fetcher.

        Args:
            timeout: Seconds to wait for the remote host on each attempt
            session: Session to reuse. A private one is created (and owned) otherwise.
        """
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()
        if self._owns_session:
            self.session.headers["User-Agent"] = "pkgshot"

    def __enter__(self) -> "RemoteFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying session if this fetcher created it."""
        if self._owns_session:
            self.session.close()

    def fetch(self, url: str) -> bytes:
        """Download the content at url.

        A failed first attempt that points at a redirect target is retried
        exactly once against that target.

        Args:
            url: Screenshot URL

        Returns:
            Raw response body

        Raises:
            NetworkTimeout: first attempt timed out and no redirect target was found
            NetworkFailure: first attempt failed and no redirect target was found
            RedirectUnrecoverable: the retry against the redirect target failed
        """
        logger.debug(f"Fetching screenshot from {url}")
        try:
            return self._get(url)
        except requests.RequestException as e:
            redirect_url = self._redirect_target(url, e)
            if redirect_url is None:
                raise self._classify(url, e) from e

        logger.info(f"Following redirect for {url} to {redirect_url}")
        try:
            return self._get(redirect_url)
        except requests.RequestException as e:
            raise RedirectUnrecoverable(
                f"Redirect from {url} to {redirect_url} failed: {e}", url=redirect_url
            ) from e

    def _get(self, url: str) -> bytes:
        with self.session.get(url, timeout=self.timeout) as response:
            response.raise_for_status()
            return response.content

    def _redirect_target(self, url: str, error: requests.RequestException) -> Optional[str]:
        """Find where a failed request wanted to send us.

        Prefers the Location header of a redirect response attached to the
        error; falls back to scanning the error message.
        """
        response = getattr(error, "response", None)
        if response is not None and response.is_redirect:
            location = response.headers.get("Location")
            if location:
                return urljoin(response.url or url, location)

        return extract_redirect_url(str(error), original_url=url)

    @staticmethod
    def _classify(url: str, error: requests.RequestException) -> FetchError:
        if isinstance(error, requests.Timeout):
            return NetworkTimeout(f"Timed out fetching {url}: {error}", url=url)
        return NetworkFailure(f"Could not fetch {url}: {error}", url=url)
