from __future__ import annotations

import logging
from typing import Dict, List, Optional

from tqdm.auto import tqdm

from fetcher.managers.asset_cache_manager import AssetCacheManager
from fetcher.model import AssetKind, FetchFailure, FetchResult
from fetcher.services.asset_download_service import AssetDownloadService
from tokenstream.model import ParseResult

logger = logging.getLogger(__name__)

# Download order; each kind numbers its files from 1.
KIND_ORDER = (AssetKind.CSS, AssetKind.JS, AssetKind.IMAGE)


class AssetResolveController:
    """
    Resolves every asset reference of a parsed document, one download at a time,
    and rewrites the rebuild buffer to point at the mirrored copies.
    """

    def __init__(self, downloader: AssetDownloadService, cache: Optional[AssetCacheManager] = None):
        self.downloader = downloader
        self.cache = cache or AssetCacheManager()

    def resolve_all(self, result: ParseResult, show_progress: bool = False) -> Dict[str, int]:
        stats = {"requested": 0, "downloaded": 0, "cached": 0, "failed": 0}
        failures: Dict[str, int] = {}

        for kind in KIND_ORDER:
            refs = result.assets_of(kind)
            if not refs:
                continue
            iterator = refs if not show_progress else tqdm(refs, desc=f"Mirroring {kind.value}", unit="file", leave=False)

            for index, ref in enumerate(iterator, start=1):
                stats["requested"] += 1
                outcome = self.resolve_one(ref.url, kind, index)
                if outcome.ok and outcome.from_cache:
                    stats["cached"] += 1
                elif outcome.ok:
                    stats["downloaded"] += 1
                else:
                    stats["failed"] += 1
                    key = outcome.failure.value if outcome.failure else "unknown"
                    failures[key] = failures.get(key, 0) + 1

                ref.local_path = outcome.local_path
                if outcome.local_path:
                    rewrite_buffer(result.buffer, ref.url, outcome.local_path)

        stats.update({f"failed_{k}": v for k, v in failures.items()})
        logger.info(
            "Assets: %d requested, %d downloaded, %d from cache, %d failed.",
            stats["requested"], stats["downloaded"], stats["cached"], stats["failed"]
        )
        return stats

    def resolve_one(self, url: str, kind: AssetKind, index: int) -> FetchResult:
        cached = self.cache.get(kind, url)
        if cached:
            logger.debug("Reusing %s for %s", cached, url)
            return FetchResult(url=url, local_path=cached, from_cache=True)
        failure = self.cache.failure_for(kind, url)
        if failure:
            logger.debug("%s already failed (%s), not fetching again", url, failure.value)
            return FetchResult(url=url, failure=failure, from_cache=True)

        outcome = self.downloader.fetch(url, kind, index)
        if outcome.ok:
            self.cache.put(kind, url, outcome.local_path)
            return outcome
        if outcome.failure != FetchFailure.INVALID_URL:
            logger.debug("No local copy for %s (%s)", url, outcome.failure)
        self.cache.put_failure(kind, url, outcome.failure or FetchFailure.FETCH_ERROR)
        return outcome


def rewrite_buffer(buffer: List[str], old_url: str, new_path: str) -> int:
    """Replaces every literal occurrence of `old_url` in the buffer. Returns the number of fragments changed."""
    if not old_url or old_url == new_path:
        return 0
    changed = 0
    for i, fragment in enumerate(buffer):
        if old_url in fragment:
            buffer[i] = fragment.replace(old_url, new_path)
            changed += 1
    return changed
