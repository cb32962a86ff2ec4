"""
HTTPS downloads for release archives and prebuilt libraries.

Failures are never retried here. A transient network error surfaces to the
person running the build, who can simply run it again.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import requests

from .errors import DownloadError, HttpStatusError, TransportError


USER_AGENT = "verovio-build-downloader/1.0"
DEFAULT_TIMEOUT = 60
CHUNK_SIZE = 65536


class Downloader:
    """Fetches remote content over HTTPS."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the downloader.

        Args:
            timeout: Connect/read timeout handed to requests
            session: Optional pre-configured session
            logger: Diagnostic sink for progress messages
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.logger = logger or logging.getLogger("verovio-build.downloader")

    def _get(self, url: str, stream: bool) -> requests.Response:
        try:
            response = self.session.get(url, stream=stream, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(url, str(e)) from e

        if not 200 <= response.status_code < 300:
            response.close()
            raise HttpStatusError(url, response.status_code)
        return response

    def fetch(self, url: str) -> bytes:
        """
        Download a URL into memory.

        Args:
            url: URL to download

        Returns:
            Response body

        Raises:
            TransportError: The request failed before a response arrived
            HttpStatusError: The response status was not 2xx
        """
        self.logger.info(f"Downloading {url}")
        response = self._get(url, stream=False)
        try:
            return response.content
        except requests.RequestException as e:
            raise TransportError(url, str(e)) from e
        finally:
            response.close()

    def fetch_to_file(self, url: str, dest: Union[str, Path]) -> Path:
        """
        Stream a URL to disk.

        The body is written to a ``.part`` file beside ``dest`` and moved
        into place only once complete.

        Args:
            url: URL to download
            dest: Final location of the downloaded file

        Returns:
            Path to the downloaded file
        """
        dest = Path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadError(url, f"Failed to create download directory {dest.parent}: {e}") from e
        partial = dest.with_name(dest.name + ".part")

        self.logger.info(f"Downloading {url}")
        self.logger.info("This may take a moment on first build...")
        response = self._get(url, stream=True)

        total_size = response.headers.get("Content-Length")
        if total_size:
            self.logger.debug(f"File size: {int(total_size):,} bytes")

        downloaded = 0
        try:
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        downloaded += len(chunk)
            os.replace(partial, dest)
        except requests.RequestException as e:
            raise TransportError(url, str(e)) from e
        except OSError as e:
            raise DownloadError(url, f"Failed to write downloaded file {dest}: {e}") from e
        finally:
            response.close()
            if partial.exists():
                partial.unlink()

        self.logger.info(f"Downloaded {downloaded:,} bytes to {dest}")
        return dest
