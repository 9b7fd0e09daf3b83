"""
Remote artifact retrieval over HTTP/HTTPS.

This module provides downloading with:
- Streaming responses with TLS verification
- Per-attempt timeouts (the overall ceiling is timeout x max_retries)
- Retry logic with exponential backoff for transient failures
  (timeouts, connection resets, 5xx responses, truncated bodies)
- Immediate abort on non-retryable failures (4xx such as 404)
- Cancellation between chunks and between retries
- A fresh requests session per download, so concurrent downloads share no
  connection pool
"""

import logging
import threading
import time
from contextlib import nullcontext
from io import BytesIO
from typing import Optional

import requests
from requests.exceptions import (
    ChunkedEncodingError,
    ConnectionError,
    ContentDecodingError,
    RequestException,
    Timeout,
)

from toolpack.core.exceptions import NetworkFatal, NetworkTransient, OperationCancelled

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 1.0
CHUNK_SIZE = 65536


class RemoteFetcher:
    """
    Downloads artifacts with bounded retry.

    Attributes:
        timeout: Seconds allowed per attempt
        max_retries: Total number of attempts
        backoff_factor: Delay before retry n is backoff_factor * 2**n seconds
        session: Caller-owned requests session shared by every download
            (None opens a private session per retrieve call)
    """

    schemes = ("http", "https")

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        session: Optional[requests.Session] = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.session = session

    def retrieve(self, url: str, cancel: Optional[threading.Event] = None) -> bytes:
        """
        Download url, retrying transient failures.

        Args:
            url: http(s) URL to download
            cancel: Optional event that aborts the download when set

        Returns:
            Response body bytes

        Raises:
            NetworkFatal: On non-retryable failures or when retries are exhausted
            OperationCancelled: If cancel was set

        Example:
            >>> fetcher = RemoteFetcher(timeout=10, max_retries=3)
            >>> data = fetcher.retrieve("https://example.com/tool.tar.gz")
        """
        with self._open_session() as session:
            return self._retrieve(session, url, cancel)

    def _open_session(self):
        if self.session is not None:
            return nullcontext(self.session)
        return requests.Session()

    def _retrieve(
        self, session: requests.Session, url: str, cancel: Optional[threading.Event]
    ) -> bytes:
        for attempt in range(self.max_retries):
            _check_cancel(cancel, url)
            try:
                return self._download_once(session, url, cancel)
            except NetworkTransient as e:
                if attempt == self.max_retries - 1:
                    raise NetworkFatal(
                        f"Download failed after {self.max_retries} attempts: {e}"
                    ) from e

                # Exponential backoff
                backoff_seconds = self.backoff_factor * 2**attempt
                logger.warning(
                    f"Download attempt {attempt + 1} failed: {e}. "
                    f"Retrying in {backoff_seconds}s..."
                )
                self._wait(backoff_seconds, cancel)

        # max_retries >= 1 guarantees the loop returns or raises
        raise NetworkFatal(f"Download failed for unknown reason: {url}")

    def _wait(self, seconds: float, cancel: Optional[threading.Event]) -> None:
        if cancel is None:
            time.sleep(seconds)
        elif cancel.wait(seconds):
            raise OperationCancelled("Download cancelled during retry backoff")

    def _download_once(
        self, session: requests.Session, url: str, cancel: Optional[threading.Event]
    ) -> bytes:
        """
        Perform one download attempt.

        Raises:
            NetworkTransient: On retryable failures
            NetworkFatal: On non-retryable failures
        """
        logger.info(f"Downloading from {url}")

        try:
            response = session.get(
                url, stream=True, timeout=self.timeout, allow_redirects=True
            )
        except (Timeout, ConnectionError) as e:
            raise NetworkTransient(f"{type(e).__name__}: {e}") from e
        except RequestException as e:
            raise NetworkFatal(f"Request for {url} failed: {e}") from e

        with response:
            status = response.status_code
            if status >= 500:
                raise NetworkTransient(f"HTTP {status} from {url}")
            if status >= 400:
                raise NetworkFatal(f"HTTP {status} from {url}")

            expected_size = response.headers.get("content-length")
            buffer = BytesIO()
            try:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    _check_cancel(cancel, url)
                    if chunk:
                        buffer.write(chunk)
            except (Timeout, ConnectionError, ChunkedEncodingError) as e:
                raise NetworkTransient(f"Connection lost while reading {url}: {e}") from e
            except ContentDecodingError as e:
                raise NetworkFatal(f"Could not decode response from {url}: {e}") from e

        data = buffer.getvalue()
        encoded = "content-encoding" in response.headers
        if (
            expected_size
            and expected_size.isdigit()
            and not encoded
            and len(data) != int(expected_size)
        ):
            raise NetworkTransient(
                f"Truncated response from {url}: got {len(data)} of {expected_size} bytes"
            )

        logger.info(f"Download complete: {url} ({len(data)} bytes)")
        return data


def _check_cancel(cancel: Optional[threading.Event], url: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"Download of {url} cancelled")


__all__ = [
    "DEFAULT_TIMEOUT",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_BACKOFF_FACTOR",
    "RemoteFetcher",
]
