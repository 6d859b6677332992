"""
Streaming Downloads

Transfers a response body to disk chunk by chunk with progress callbacks and
cooperative cancellation. The destination is always written from zero; a
partial file left behind by a failure is the caller's to discard.
"""

import os
import threading
import time
from typing import Any, Optional

import requests

from fwfetch.constants import DEFAULT_CHUNK_SIZE, DEFAULT_REQUEST_TIMEOUT
from fwfetch.exceptions import CacheWriteError, DownloadCancelledError, TransportError
from fwfetch.log_utils import logger
from fwfetch.utils import extract_error_message

from .interfaces import Pathish, ProgressCallback


def _content_length(headers: Any) -> Optional[int]:
    """Return Content-Length as a non-negative int, or None when missing or unparsable."""
    value = (headers or {}).get("Content-Length")
    if value is None:
        return None
    try:
        length = int(value)
    except (TypeError, ValueError):
        return None
    return length if length >= 0 else None


class StreamingDownloader:
    """Streams a URL to a local path over a shared HTTP session."""

    def __init__(
        self,
        session: requests.Session,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.session = session
        self.chunk_size = chunk_size
        self.timeout = timeout

    def download(
        self,
        url: str,
        destination: Pathish,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Stream `url` into `destination`, invoking `on_progress(bytes_so_far, total)` per chunk.

        `total` is the server's Content-Length, or None when the length is unknown (the caller
        renders an indeterminate indicator in that case).

        Parameters:
            url (str): URL of the artifact.
            destination (Pathish): File to create or truncate.
            on_progress (Optional[ProgressCallback]): Progress callback.
            cancel_event (Optional[threading.Event]): Checked between chunks; when set the
                transfer stops with DownloadCancelledError.

        Returns:
            int: Total bytes written.

        Raises:
            TransportError: On connection errors, timeouts, or non-2xx responses.
            CacheWriteError: If the destination cannot be written.
            DownloadCancelledError: If `cancel_event` is set mid-transfer.
        """
        logger.debug(f"Downloading {url} to {destination}")
        start_time = time.time()
        response = None
        bytes_written = 0
        try:
            try:
                response = self.session.get(url, stream=True, timeout=self.timeout)
            except requests.RequestException as e:
                raise TransportError(
                    f"Download failed for {url}", url=url, details=str(e)
                ) from e

            logger.debug(
                f"Received HTTP response status code: {response.status_code} for URL: {url}"
            )
            if not 200 <= response.status_code < 300:
                raise TransportError(
                    f"Download failed for {url}. {extract_error_message(response)}",
                    url=url,
                    status_code=response.status_code,
                )

            total = _content_length(response.headers)

            try:
                with open(destination, "wb") as file:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if cancel_event is not None and cancel_event.is_set():
                            raise DownloadCancelledError(
                                f"Download of {url} cancelled"
                            )
                        if not chunk:
                            continue
                        file.write(chunk)
                        bytes_written += len(chunk)
                        if on_progress is not None:
                            on_progress(bytes_written, total)
            except requests.RequestException as e:
                raise TransportError(
                    f"Connection lost while downloading {url}",
                    url=url,
                    details=f"{e} after {bytes_written} bytes",
                ) from e
            except OSError as e:
                raise CacheWriteError(
                    f"Could not write {destination}", path=str(destination), details=str(e)
                ) from e
        finally:
            if response is not None:
                response.close()

        elapsed = time.time() - start_time
        logger.debug("Download elapsed time: %.2fs for %s", elapsed, url)
        if total is not None and bytes_written != total:
            logger.debug(
                "Received %d bytes for %s but Content-Length was %d",
                bytes_written,
                os.path.basename(str(destination)),
                total,
            )
        return bytes_written
