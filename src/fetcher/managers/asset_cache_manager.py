# src/fetcher/managers/asset_cache_manager.py
import logging
from typing import Dict, Optional, Tuple

from fetcher.model import AssetKind, FetchFailure
from fetcher.utils.url_utils import UrlUtils

logger = logging.getLogger(__name__)


class AssetCacheManager:
    """
    Per-document dedup cache: canonical remote URL -> mirrored local path.

    Scripts are keyed without their query string so cache-busting parameters
    do not trigger another download; stylesheets and images use the exact URL.
    Failed URLs are remembered with their failure kind, so a broken reference
    costs one download attempt per document.
    Not thread-safe; callers that parallelize downloads must lock around it.
    """

    def __init__(self):
        self._paths: Dict[Tuple[AssetKind, str], str] = {}
        self._failures: Dict[Tuple[AssetKind, str], FetchFailure] = {}

    @staticmethod
    def canonical_key(kind: AssetKind, url: str) -> Tuple[AssetKind, str]:
        if kind == AssetKind.JS:
            return kind, UrlUtils.strip_query(url)
        return kind, url

    def get(self, kind: AssetKind, url: str) -> Optional[str]:
        return self._paths.get(self.canonical_key(kind, url))

    def failure_for(self, kind: AssetKind, url: str) -> Optional[FetchFailure]:
        return self._failures.get(self.canonical_key(kind, url))

    def put(self, kind: AssetKind, url: str, local_path: str) -> None:
        key = self.canonical_key(kind, url)
        if key in self._paths:
            logger.debug("Cache already holds %s -> %s, keeping the first path.", key[1], self._paths[key])
            return
        self._paths[key] = local_path

    def put_failure(self, kind: AssetKind, url: str, failure: FetchFailure) -> None:
        key = self.canonical_key(kind, url)
        if key not in self._paths:
            self._failures.setdefault(key, failure)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, item) -> bool:
        kind, url = item
        return self.canonical_key(kind, url) in self._paths
