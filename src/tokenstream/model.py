# src/tokenstream/model.py (Token Layer)
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fetcher.model import AssetKind, AssetReference


class TokenKind(str, Enum):
    TAG_OPEN = "tag_open"
    ATTRIBUTE = "attribute"
    WORD = "word"
    TAG_CLOSE = "tag_close"


class Token(BaseModel):
    """One atomic parse instruction produced by the external tokenizer."""
    model_config = ConfigDict(frozen=True)

    kind: TokenKind
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, v):
        return "" if v is None else str(v)


class TagRecord(BaseModel):
    name: str
    position: int
    type: str  # "open" | "close"

    @property
    def is_open(self) -> bool:
        return self.type == "open"


class AttributeRecord(BaseModel):
    tag: str
    name: str
    value: str
    in_head: bool = False


class ParseState(BaseModel):
    """
    Mutable working state of a single parse run.
    Threaded explicitly through the step functions of the stream parser.
    """
    current_tag: Optional[str] = None
    tag_stack: List[str] = Field(default_factory=list)
    in_head: bool = False
    buffer: List[str] = Field(default_factory=list)
    # True while the last buffer entry is an open tag that can still take attributes.
    open_entry: bool = False
    # Index of that entry's '>' once inline text forced it closed, None while pending.
    open_tag_end: Optional[int] = None

    tags: List[TagRecord] = Field(default_factory=list)
    attributes: List[AttributeRecord] = Field(default_factory=list)
    content: Dict[str, List[str]] = Field(default_factory=dict)
    functional_content: Dict[str, List[str]] = Field(default_factory=dict)
    visual_content: Dict[str, List[str]] = Field(default_factory=dict)

    assets: List[AssetReference] = Field(default_factory=list)
    title: Optional[str] = None
    meta_data: Dict[str, str] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)


class ParseResult(BaseModel):
    """Everything the later passes need from the token stream."""
    buffer: List[str] = Field(default_factory=list)
    tags: List[TagRecord] = Field(default_factory=list)
    attributes: List[AttributeRecord] = Field(default_factory=list)
    content: Dict[str, List[str]] = Field(default_factory=dict)
    functional_content: Dict[str, List[str]] = Field(default_factory=dict)
    visual_content: Dict[str, List[str]] = Field(default_factory=dict)
    assets: List[AssetReference] = Field(default_factory=list)
    title: Optional[str] = None
    meta_data: Dict[str, str] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    open_stack: List[str] = Field(default_factory=list)

    @property
    def open_tags(self) -> List[TagRecord]:
        return [t for t in self.tags if t.is_open]

    def attributes_for(self, tag_name: str) -> List[AttributeRecord]:
        return [a for a in self.attributes if a.tag == tag_name]

    def assets_of(self, kind: AssetKind) -> List[AssetReference]:
        return [a for a in self.assets if a.kind == kind]

    def matching_close(self, tag: TagRecord) -> Optional[TagRecord]:
        """Finds the close record that balances `tag`, counting nested tags of the same name."""
        depth = 0
        for other in self.tags:
            if other.position <= tag.position or other.name != tag.name:
                continue
            if other.is_open:
                depth += 1
            elif depth == 0:
                return other
            else:
                depth -= 1
        return None

    def open_tags_between(self, tag: TagRecord) -> List[TagRecord]:
        end = self.matching_close(tag)
        if end is None:
            return []
        return [t for t in self.tags if t.is_open and tag.position < t.position < end.position]


class ClassifierFailure(str, Enum):
    DISABLED = "disabled"
    SINGLE_CLASS = "single_class"
    FIT_ERROR = "fit_error"
    PREDICT_ERROR = "predict_error"


class ClassifierSettings(BaseModel):
    enabled: bool = True
    hidden_units: Tuple[int, ...] = (100, 50)
    learning_rate: float = 0.03
    max_iter: int = 2000
    batch_size: int = 10
    random_seed: int = 42


class ClassificationOutcome(BaseModel):
    predicted_content: Dict[str, str] = Field(default_factory=dict)
    trained_on: int = 0
    used_fallback: bool = False
    failure: Optional[ClassifierFailure] = None

    @property
    def interactive_count(self) -> int:
        return sum(1 for v in self.predicted_content.values() if v == "Interactive element")

    @property
    def visual_count(self) -> int:
        return sum(1 for v in self.predicted_content.values() if v == "Visual element")
