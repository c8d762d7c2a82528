"""HTTP fetching for the alternate compiler toolchain.

Two kinds of resources are needed: small text documents (a runtime
release's DEPS file, Chromium's clang update script) and the clang
archive itself, which is streamed to disk with a tqdm progress bar,
optionally verified against a SHA256 digest, and extracted in place.
Transient request failures are retried.
"""

import hashlib
import logging
import tarfile
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm

REQUEST_TIMEOUT = 30


class DownloadError(Exception):
    """Raised when a resource cannot be fetched."""

    pass


class ChecksumError(Exception):
    """Raised when a downloaded file does not match its expected digest."""

    pass


class ExtractionError(Exception):
    """Raised when an archive cannot be unpacked."""

    pass


class PackageDownloader:
    """Fetches text resources and archives over HTTP."""

    def __init__(self, chunk_size: int = 8192, retries: int = 3, retry_delay: float = 2.0):
        """Initialize downloader.

        Args:
            chunk_size: Bytes read per streamed chunk
            retries: Attempts per request before giving up
            retry_delay: Seconds to wait between attempts
        """
        self.chunk_size = chunk_size
        self.retries = retries
        self.retry_delay = retry_delay

    def _get(self, url: str, stream: bool = False) -> requests.Response:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            logging.debug(f"GET {url} (attempt {attempt}/{self.retries})")
            try:
                response = requests.get(url, stream=stream, timeout=REQUEST_TIMEOUT)
                response.raise_for_status()
                return response
            except requests.RequestException as e:
                logging.debug(f"Request for {url} failed: {e}")
                last_error = e
                if attempt < self.retries:
                    time.sleep(self.retry_delay)
        raise DownloadError(f"Failed to download {url}: {last_error}")

    def fetch_text(self, url: str) -> str:
        """Fetch a small text resource.

        Raises:
            DownloadError: If every attempt fails
        """
        return self._get(url).text

    def download(
        self,
        url: str,
        dest_path: Path,
        checksum: Optional[str] = None,
        show_progress: bool = True,
    ) -> Path:
        """Stream a file to disk.

        The body is written to '<dest>.tmp' and only renamed into place
        once it is complete and its digest (if given) matches.

        Raises:
            DownloadError: If the request or the transfer fails
            ChecksumError: If the SHA256 digest does not match
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        partial = dest_path.with_name(dest_path.name + ".tmp")

        try:
            digest = self._stream_to_file(url, partial, show_progress)
            if checksum is not None and digest.lower() != checksum.lower():
                raise ChecksumError(f"Checksum mismatch for {url}: expected {checksum}, got {digest}")
            partial.replace(dest_path)
        finally:
            if partial.exists():
                partial.unlink()

        logging.debug(f"Downloaded {url} to {dest_path}")
        return dest_path

    def _stream_to_file(self, url: str, path: Path, show_progress: bool) -> str:
        response = self._get(url, stream=True)
        total = int(response.headers.get("content-length", 0))
        sha256 = hashlib.sha256()
        progress = tqdm(
            total=total,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            desc=f"Downloading {Path(urlparse(url).path).name}",
            disable=not show_progress or total == 0,
        )
        try:
            with open(path, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    sha256.update(chunk)
                    progress.update(len(chunk))
        except requests.RequestException as e:
            raise DownloadError(f"Transfer of {url} interrupted: {e}")
        finally:
            progress.close()
            response.close()
        return sha256.hexdigest()

    def extract_archive(self, archive_path: Path, dest_dir: Path) -> Path:
        """Unpack a tar archive (any compression tarfile detects) into dest_dir.

        Members that would land outside dest_dir are rejected.

        Raises:
            ExtractionError: If the archive is missing or unreadable
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)
        if not archive_path.is_file():
            raise ExtractionError(f"Archive not found: {archive_path}")

        dest_dir.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(archive_path, "r:*") as tar:
                tar.extractall(dest_dir, filter="data")
        except (OSError, tarfile.TarError) as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}")
        return dest_dir
