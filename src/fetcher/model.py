# src/fetcher/model.py (Asset Layer)
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


class AssetKind(str, Enum):
    CSS = "css"
    JS = "js"
    IMAGE = "image"

    @property
    def directory(self) -> str:
        """Suffix of the 'mirrored_<x>' output folder for this kind."""
        return "images" if self is AssetKind.IMAGE else self.value


class AssetReference(BaseModel):
    kind: AssetKind
    url: str
    local_path: Optional[str] = None

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, v):
        if v is None:
            raise ValueError("url is required")
        return str(v).strip()

    @property
    def resolved(self) -> bool:
        return bool(self.local_path)


class FetchFailure(str, Enum):
    INVALID_URL = "invalid_url"
    TIMEOUT = "timeout"
    SIZE_EXCEEDED = "size_exceeded"
    FETCH_ERROR = "fetch_error"


class FetchResult(BaseModel):
    """Outcome of a single asset download. `local_path` is None when the fetch failed."""
    url: str
    local_path: Optional[str] = None
    failure: Optional[FetchFailure] = None
    error: Optional[str] = None
    attempts: int = 0
    bytes_written: int = 0
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.local_path is not None


def _default_limits() -> Dict[AssetKind, int]:
    return {
        AssetKind.CSS: 2 * 1024 * 1024,
        AssetKind.JS: 5 * 1024 * 1024,
        AssetKind.IMAGE: 8 * 1024 * 1024,
    }


class FetchSettings(BaseModel):
    enabled: bool = True
    validate_connection: bool = True
    timeout: float = Field(default=15.0, description="Connect and read timeout in seconds.")
    max_retries: int = Field(default=3, ge=1)
    user_agent: str = "Mozilla/5.0 (compatible; sitemirror)"
    limits: Dict[AssetKind, int] = Field(default_factory=_default_limits)

    def max_size_for(self, kind: AssetKind) -> int:
        return self.limits.get(kind, _default_limits()[kind])
