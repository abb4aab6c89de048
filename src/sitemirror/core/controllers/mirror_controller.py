from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from fetcher.controllers.asset_resolve_controller import AssetResolveController
from fetcher.model import FetchSettings
from fetcher.services.asset_download_service import AssetDownloadService
from rebuilder.dom.builder import TreeReconstructor
from rebuilder.dom.serializer import DocumentSerializer
from rebuilder.services.result_aggregator_service import ResultAggregatorService
from sitemirror.core.managers.config_manager import ConfigManager, config_manager, load_section
from sitemirror.core.managers.output_manager import OutputManager
from sitemirror.core.utils.path_utils import PathUtils
from sitemirror.model import MirrorReport, OutputSettings
from tokenstream.model import ClassifierSettings, Token
from tokenstream.services.base_url_service import resolve_base_url
from tokenstream.services.content_classifier_service import classify_empty_tags
from tokenstream.services.stream_parse_service import coerce_tokens, parse_tokens

logger = logging.getLogger(__name__)


class MirrorController:
    """
    Runs the whole reconstruction for one document, strictly in sequence:
    parse -> classify -> fetch assets -> rebuild tree -> aggregate -> write.
    """

    def __init__(
            self,
            config: Optional[ConfigManager] = None,
            downloader_factory: Optional[Callable[..., AssetDownloadService]] = None,
            model_factory: Optional[Callable[[int], object]] = None,
    ) -> None:
        self.config = config or config_manager
        self.downloader_factory = downloader_factory or AssetDownloadService
        self.model_factory = model_factory

    # -------- Settings --------

    def fetch_settings(self) -> FetchSettings:
        return load_section(self.config, "fetch", FetchSettings)

    def classifier_settings(self) -> ClassifierSettings:
        return load_section(self.config, "classifier", ClassifierSettings)

    def output_settings(self) -> OutputSettings:
        return load_section(self.config, "output", OutputSettings)

    # -------- Pipeline --------

    def run(
            self,
            raw_tokens: Sequence[Union[Token, Mapping[str, Any]]],
            base_url: Optional[str] = None,
            output_dir: Optional[Union[str, Path]] = None,
            show_progress: bool = False,
    ) -> MirrorReport:
        start = time.perf_counter()
        fetch_settings = self.fetch_settings()
        output_settings = self.output_settings()
        out_dir = PathUtils.get_output_dir(output_dir or output_settings.directory)

        tokens = coerce_tokens(raw_tokens)
        base = resolve_base_url(tokens, base_url)
        logger.info("Mirroring %d tokens for %s into %s", len(tokens), base, out_dir)

        parsed = parse_tokens(tokens)
        classification = classify_empty_tags(parsed, self.classifier_settings(), self.model_factory)

        asset_stats = {}
        if fetch_settings.enabled and parsed.assets:
            with self.downloader_factory(out_dir, base, fetch_settings) as downloader:
                if fetch_settings.validate_connection:
                    downloader.check_origin()
                asset_stats = AssetResolveController(downloader).resolve_all(parsed, show_progress=show_progress)
        elif parsed.assets:
            logger.info("Asset fetching disabled, %d reference(s) left unresolved.", len(parsed.assets))

        document = TreeReconstructor(base).build(parsed.buffer, parsed.title, parsed.assets)
        html = DocumentSerializer(pretty=output_settings.pretty_print).serialize(document)

        functionality, visual = ResultAggregatorService(parsed, classification).aggregate()

        output = OutputManager(out_dir, output_settings)
        output.save(html, functionality, visual)
        verification = output.verify_html()

        report = MirrorReport(
            base_url=base,
            output_dir=out_dir,
            html_path=output.html_path,
            functionality_path=output.functionality_path,
            visual_path=output.visual_path,
            token_count=len(tokens),
            tag_count=len(parsed.tags),
            warnings=parsed.warnings,
            asset_stats=asset_stats,
            classifier_failure=classification.failure.value if classification.failure else None,
            verification=verification,
            duration_s=round(time.perf_counter() - start, 3),
        )
        logger.info("Mirror finished in %.2fs: %s", report.duration_s, report.html_path)
        return report
