# src/fetcher/utils/url_utils.py
import logging
import os
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

logger = logging.getLogger(__name__)

TRACKER_PATTERN = re.compile(r"yandex|metrika|google|analytics|ads|tracker", re.IGNORECASE)


class UrlUtils:
    """A collection of static methods for URL parsing and manipulation."""

    @staticmethod
    def ensure_scheme(url: str) -> str:
        url = url.strip()
        if not url.startswith(('http://', 'https://')):
            url = 'https://' + url
        return url

    @staticmethod
    def get_base_url(url: str) -> Optional[str]:
        """
        Extracts and returns the origin (scheme + netloc) of a given URL.
        """
        if isinstance(url, bytes):
            url = url.decode('utf-8')

        if not url.startswith(('http://', 'https://')):
            url = 'http://' + url

        try:
            parsed_url = urlparse(url)
            if not parsed_url.scheme or not parsed_url.netloc:
                logger.debug("Invalid URL format: %s", url)
                return None
            return f"{parsed_url.scheme}://{parsed_url.netloc}"
        except ValueError:
            logger.debug("Could not parse invalid URL: %s", url)
            return None

    @staticmethod
    def resolve(base_url: str, url: str) -> str:
        """Absolute URLs pass through; everything else is joined onto the base URL."""
        if url.startswith(('http://', 'https://')):
            return url
        return urljoin(base_url, url)

    @staticmethod
    def is_fetchable(url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

    @staticmethod
    def strip_query(url: str) -> str:
        return url.split('?', 1)[0]

    @staticmethod
    def is_tracker(url: str) -> bool:
        return bool(TRACKER_PATTERN.search(url))

    @staticmethod
    def extension_for(url: str, kind: str) -> str:
        """
        File extension for a mirrored asset: taken from the URL path,
        forced to '.css' for dynamic css.php stylesheets, '.<kind>' otherwise.
        """
        if kind == 'css' and 'css.php' in url:
            return '.css'
        try:
            _, ext = os.path.splitext(urlparse(url).path)
        except ValueError:
            ext = ''
        return ext if ext else f'.{kind}'
