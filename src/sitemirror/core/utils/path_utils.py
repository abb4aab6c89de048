# src/sitemirror/core/utils/path_utils.py
import logging
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class PathUtils:
    """
    A central utility for reliably retrieving the paths sitemirror reads from and writes to.
    """

    # --- Package specific paths ---

    @staticmethod
    def get_package_root() -> Path:
        """Returns the directory of the installed 'sitemirror' package."""
        return Path(__file__).resolve().parent.parent.parent

    @staticmethod
    def get_settings_file() -> Path:
        return PathUtils.get_package_root() / "settings.json"

    # --- Output paths ---

    @staticmethod
    def get_output_dir(output_dir: Optional[Union[str, Path]] = None, create: bool = True) -> Path:
        """
        Resolves the output directory for the mirrored artifacts.
        Relative paths are resolved against the current working directory.
        """
        path = Path(output_dir) if output_dir else Path.cwd() / "website_analysis_output"
        if not path.is_absolute():
            path = Path.cwd() / path
        if create:
            path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def get_asset_dir(output_root: Path, dir_name: str) -> Path:
        """Returns (and creates) the 'mirrored_<dir_name>' folder below the output root."""
        path = output_root / f"mirrored_{dir_name}"
        path.mkdir(parents=True, exist_ok=True)
        return path
