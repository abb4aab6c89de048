from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from sitemirror.core.controllers.mirror_controller import MirrorController
from sitemirror.core.managers.config_manager import config_manager
from sitemirror.core.utils.configure_logging import configure_logger
from sitemirror.model import ArtifactWriteError
from tokenstream.services.token_reader_service import TokenReaderService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sitemirror", description="Rebuild a site mirror from a token stream.")
    parser.add_argument("token_file", metavar="TOKEN_FILE", help="Token file (kind/value line pairs or JSON list).")
    parser.add_argument("base_url", metavar="BASE_URL", nargs="?", default=None,
                        help="Origin for relative asset URLs (detected from the stream when omitted).")
    parser.add_argument("--config", default=None, help="JSON file merged over the packaged settings.")
    parser.add_argument("--output-dir", default=None,
                        help=f"Output directory (default: {config_manager.get_nested('output.directory', 'website_analysis_output')}).")
    parser.add_argument("--no-fetch", action="store_true", help="Do not download external assets.")
    parser.add_argument("--no-classifier", action="store_true", help="Use the static allowlist instead of the classifier.")
    parser.add_argument("--no-progress", action="store_true", help="Hide download progress bars.")
    parser.add_argument("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ...).")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint for running the mirror pipeline from the command line."""
    parser = build_parser()
    try:
        pargs = parser.parse_args(argv)
    except SystemExit as e:
        return 0 if e.code == 0 else 1

    if pargs.config:
        try:
            config_manager.load_file(pargs.config)
        except (OSError, ValueError) as e:
            print(f"❌ Could not load settings from {pargs.config}: {e}")
            return 1

    configure_logger(pargs.log_level or config_manager.get_nested("debug.level", "INFO"))

    overrides = {}
    if pargs.no_fetch:
        overrides["fetch.enabled"] = False
    if pargs.no_classifier:
        overrides["classifier.enabled"] = False
    config_manager.apply_overrides(overrides)

    try:
        tokens = TokenReaderService(pargs.token_file).read_tokens()
    except FileNotFoundError as e:
        print(f"❌ Error: {e}")
        return 1

    try:
        report = MirrorController().run(
            tokens,
            base_url=pargs.base_url,
            output_dir=pargs.output_dir,
            show_progress=not pargs.no_progress,
        )
    except ArtifactWriteError as e:
        logger.error("Mirror failed: %s", e, exc_info=True)
        print(f"❌ Could not write output: {e}")
        return 1

    print(
        f"✅ Mirrored {report.base_url}: {report.tag_count} tags, "
        f"{report.asset_stats.get('downloaded', 0)} assets downloaded, "
        f"{len(report.warnings)} warnings in {report.duration_s}s."
    )
    print(f"   Open: {report.html_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
