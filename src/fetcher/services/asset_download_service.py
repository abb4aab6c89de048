# src/fetcher/services/asset_download_service.py
import logging
import time
from pathlib import Path
from typing import Callable, Optional

import requests
from urllib3.exceptions import ReadTimeoutError

from fetcher.model import AssetKind, FetchFailure, FetchResult, FetchSettings
from fetcher.utils.url_utils import UrlUtils
from sitemirror.core.utils.path_utils import PathUtils

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def is_timeout(error: Exception) -> bool:
    """
    True for connect/read timeouts, including a read that stalls mid-body:
    requests re-raises that one from iter_content as a ConnectionError.
    """
    if isinstance(error, requests.Timeout):
        return True
    return isinstance(error, requests.ConnectionError) and bool(error.args) and isinstance(error.args[0], ReadTimeoutError)


class AssetDownloadService:
    """
    Downloads one external asset at a time into '<output_root>/mirrored_<kind>'.

    Every download is bounded by a size limit, connect/read timeouts and a
    retry budget that only applies to timeouts. Failures are returned as
    FetchResult values, never raised.
    """

    def __init__(
            self,
            output_root: Path,
            base_url: str,
            settings: Optional[FetchSettings] = None,
            session: Optional[requests.Session] = None,
            sleep: Callable[[float], None] = time.sleep,
    ):
        self.output_root = Path(output_root)
        self.base_url = base_url
        self.settings = settings or FetchSettings()
        self.sleep = sleep
        self.session = session or self._build_session()

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            'User-Agent': self.settings.user_agent,
            'Accept': '*/*',
            'Referer': self.base_url,
        })
        return session

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # =========================================================================
    #  DOWNLOAD
    # =========================================================================
    def fetch(
            self,
            url: str,
            kind: AssetKind,
            index: int,
            max_size: Optional[int] = None,
            timeout: Optional[float] = None,
            max_retries: Optional[int] = None,
    ) -> FetchResult:
        """
        Streams `url` to '<kind>_<index><ext>' and returns the path relative to
        the output root, or a FetchResult carrying the failure kind.
        """
        max_size = max_size if max_size is not None else self.settings.max_size_for(kind)
        timeout = timeout if timeout is not None else self.settings.timeout
        max_retries = max(1, max_retries if max_retries is not None else self.settings.max_retries)

        if not url or not url.strip():
            return FetchResult(url=url or "", failure=FetchFailure.INVALID_URL, error="empty url")

        try:
            full_url = UrlUtils.resolve(self.base_url, url.strip())
        except ValueError as e:
            logger.warning("Skipping malformed %s URL %r: %s", kind.value, url, e)
            return FetchResult(url=url, failure=FetchFailure.INVALID_URL, error=str(e))
        if not UrlUtils.is_fetchable(full_url):
            logger.info("Skipping non-fetchable %s URL: %s", kind.value, url)
            return FetchResult(url=url, failure=FetchFailure.INVALID_URL, error="unsupported scheme")

        try:
            asset_dir = PathUtils.get_asset_dir(self.output_root, kind.directory)
        except OSError as e:
            logger.error("AssetFetchError: cannot create the %s folder: %s", kind.value, e)
            return FetchResult(url=url, failure=FetchFailure.FETCH_ERROR, error=str(e))
        file_name = f"{kind.value}_{index}{UrlUtils.extension_for(full_url, kind.value)}"
        target = asset_dir / file_name
        relative_path = f"{asset_dir.name}/{file_name}"

        logger.info("Downloading %s: %s", kind.value.upper(), full_url)
        attempt = 0
        while attempt < max_retries:
            attempt += 1
            try:
                written = self._stream_to_file(full_url, target, max_size, timeout)
            except (requests.RequestException, OSError) as e:
                self._discard(target)
                if not is_timeout(e):
                    logger.error("AssetFetchError: %s %s: %s", kind.value, full_url, e)
                    return FetchResult(url=url, failure=FetchFailure.FETCH_ERROR, error=str(e), attempts=attempt)
                if attempt < max_retries:
                    backoff = 2 * attempt
                    logger.warning(
                        "Timeout downloading %s %s, retrying in %ss (%d attempts left)...",
                        kind.value, full_url, backoff, max_retries - attempt
                    )
                    self.sleep(backoff)
                    continue
                logger.error("AssetFetchTimeout: giving up on %s after %d attempts: %s", full_url, attempt, e)
                return FetchResult(url=url, failure=FetchFailure.TIMEOUT, error=str(e), attempts=attempt)

            if written is None:
                logger.warning(
                    "AssetSizeExceeded: %s exceeds the %.1f MB limit: %s",
                    kind.value.upper(), max_size / 1024 / 1024, full_url
                )
                return FetchResult(
                    url=url, failure=FetchFailure.SIZE_EXCEEDED,
                    error=f"exceeds {max_size} bytes", attempts=attempt
                )

            logger.info("%s saved to: %s (%d bytes)", kind.value.upper(), relative_path, written)
            return FetchResult(url=url, local_path=relative_path, attempts=attempt, bytes_written=written)

        return FetchResult(url=url, failure=FetchFailure.TIMEOUT, attempts=attempt)

    def _stream_to_file(self, url: str, target: Path, max_size: int, timeout: float) -> Optional[int]:
        """
        Writes the response body in fixed chunks. Returns the byte count, or None
        (with the partial file removed) once the body grows past `max_size`.
        """
        downloaded = 0
        with self.session.get(url, stream=True, timeout=(timeout, timeout)) as response:
            response.raise_for_status()
            with open(target, 'wb') as local_file:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    downloaded += len(chunk)
                    if downloaded > max_size:
                        break
                    local_file.write(chunk)

        if downloaded > max_size:
            self._discard(target)
            return None
        return downloaded

    @staticmethod
    def _discard(target: Path) -> None:
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partial file %s: %s", target, e)

    # =========================================================================
    #  ORIGIN PROBE
    # =========================================================================
    def check_origin(self, timeout: float = 5.0) -> bool:
        """Probes the base URL once so a dead origin shows up early in the log."""
        try:
            with self.session.get(self.base_url, stream=True, timeout=(timeout, timeout)) as response:
                logger.info("Successfully connected to %s (HTTP %s)", self.base_url, response.status_code)
                return response.ok
        except requests.Timeout as e:
            logger.warning("Could not connect to %s - downloads may fail: %s", self.base_url, e)
        except requests.RequestException as e:
            logger.warning("Error connecting to %s: %s", self.base_url, e)
        return False
