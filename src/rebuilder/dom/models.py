# src/rebuilder/dom/models.py
from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

TEXT_TAG = "#text"
DOCUMENT_TAG = "#document"
DOCTYPE_TAG = "#doctype"


class ReconstructedNode(BaseModel):
    """
    One element of the rebuilt document tree.

    Text children use the pseudo tag '#text' and keep their content in `text`;
    for elements `text` holds the inline content that preceded any child.
    """
    tag: str
    attrs: Dict[str, str] = Field(default_factory=dict)
    text: Optional[str] = None
    children: List["ReconstructedNode"] = Field(default_factory=list)

    @classmethod
    def text_node(cls, text: str) -> "ReconstructedNode":
        return cls(tag=TEXT_TAG, text=text)

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT_TAG

    @property
    def elements(self) -> List["ReconstructedNode"]:
        """Child elements, without text nodes."""
        return [c for c in self.children if not c.is_text]

    def append(self, child: "ReconstructedNode") -> "ReconstructedNode":
        self.children.append(child)
        return child

    def iter(self) -> Iterator["ReconstructedNode"]:
        """Depth-first walk over this node and all descendants."""
        yield self
        for child in self.children:
            yield from child.iter()

    def find(self, tag: str, **attrs: str) -> Optional["ReconstructedNode"]:
        for node in self.iter():
            if node.tag == tag and all(node.attrs.get(k) == v for k, v in attrs.items()):
                return node
        return None

    def find_all(self, tag: str) -> List["ReconstructedNode"]:
        return [node for node in self.iter() if node.tag == tag]

    def get_text(self) -> str:
        parts = [n.text for n in self.iter() if n.text]
        return " ".join(parts)


ReconstructedNode.model_rebuild()


class MirrorDocument(BaseModel):
    """The rebuilt document: synthetic root plus handles into the fixed skeleton."""
    root: ReconstructedNode
    head: ReconstructedNode
    body: ReconstructedNode
    main: ReconstructedNode
    head_asset_refs: List[str] = Field(default_factory=list)
