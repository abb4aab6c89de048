# src/sitemirror/model.py (Shell Layer)
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OutputSettings(BaseModel):
    directory: str = "website_analysis_output"
    html: str = "mirrored_site.html"
    functionality_json: str = "site_functionality.json"
    visual_json: str = "site_visual_structure.json"
    pretty_print: bool = True


class MirrorReport(BaseModel):
    """Summary of one pipeline run, returned to the caller and logged by the CLI."""
    base_url: str
    output_dir: Path
    html_path: Path
    functionality_path: Path
    visual_path: Path
    token_count: int = 0
    tag_count: int = 0
    warnings: List[str] = Field(default_factory=list)
    asset_stats: Dict[str, int] = Field(default_factory=dict)
    classifier_failure: Optional[str] = None
    verification: Dict[str, bool] = Field(default_factory=dict)
    duration_s: float = 0.0
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def verified(self) -> bool:
        return bool(self.verification) and all(self.verification.values())


class ArtifactWriteError(OSError):
    """Raised when one of the three persisted artifacts cannot be written."""
