# src/sitemirror/core/managers/output_manager.py
import logging
import re
from pathlib import Path
from typing import Dict, Optional

from rebuilder.model import FunctionalityView, VisualView
from sitemirror.core.services.json_service import to_json
from sitemirror.model import ArtifactWriteError, OutputSettings

logger = logging.getLogger(__name__)

_TITLE = re.compile(r"<title>.*?</title>", re.DOTALL)


class OutputManager:
    """
    Owns the output directory: writes the mirrored HTML and the two JSON views
    under their fixed file names and checks the HTML afterwards.
    """

    def __init__(self, output_dir: Path, settings: Optional[OutputSettings] = None):
        self.output_dir = Path(output_dir)
        self.settings = settings or OutputSettings()

    @property
    def html_path(self) -> Path:
        return self.output_dir / self.settings.html

    @property
    def functionality_path(self) -> Path:
        return self.output_dir / self.settings.functionality_json

    @property
    def visual_path(self) -> Path:
        return self.output_dir / self.settings.visual_json

    def _write(self, path: Path, text: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            raise ArtifactWriteError(f"Could not write {path}: {e}") from e
        logger.info("Saved %s", path)

    def save(self, html: str, functionality: FunctionalityView, visual: VisualView) -> None:
        self._write(self.functionality_path, to_json(functionality))
        self._write(self.visual_path, to_json(visual))
        self._write(self.html_path, html)

    def verify_html(self) -> Dict[str, bool]:
        """Sanity checks on the written mirror; the results are logged and returned."""
        if not self.html_path.exists():
            logger.error("Mirrored HTML not found at %s", self.html_path)
            return {"file exists": False}

        content = self.html_path.read_text(encoding="utf-8")
        checks = {
            "DOCTYPE declaration": "<!DOCTYPE html>" in content,
            "HTML tag": "<html" in content,
            "Head section": "<head>" in content,
            "Body section": "<body>" in content,
            "Title": bool(_TITLE.search(content)),
            "CSS styles": "<style>" in content,
        }
        for check, passed in checks.items():
            logger.debug("  %s: %s", check, "PASS" if passed else "FAIL")
        if all(checks.values()):
            logger.info("Mirrored HTML passed all checks")
        else:
            logger.warning("Mirrored HTML has issues: %s", [k for k, v in checks.items() if not v])
        return checks
