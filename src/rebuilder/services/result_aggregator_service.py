from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fetcher.model import AssetKind
from rebuilder.model import FunctionalityView, VisualView
from tokenstream.model import AttributeRecord, ClassificationOutcome, ParseResult, TagRecord

logger = logging.getLogger(__name__)

INTERACTIVE_TAGS = frozenset({"button", "a", "input", "select", "textarea", "form"})
INTERACTIVE_ROLES = frozenset({"button", "link", "menu"})
CONTAINER_TAGS = frozenset({"div", "section", "article", "main"})
LAYOUT_TAGS = frozenset({"header", "footer", "aside", "nav"})
CONTENT_BLOCK_TAGS = frozenset({"p", "h1", "h2", "h3", "h4", "h5", "h6", "span", "strong", "em"})

STRUCTURE_PREVIEW_LIMIT = 50
_NAV_HINT = re.compile(r"nav|menu")


class Bucket(str, Enum):
    FORMS = "forms"
    NAVIGATION = "navigational_elements"
    INTERACTIVE = "interactive_elements"
    CONTAINERS = "containers"
    LAYOUT = "layout_elements"
    CONTENT_BLOCKS = "content_blocks"


def destination(bucket: Bucket, functionality: FunctionalityView, visual: VisualView) -> Dict[str, List[Dict[str, Any]]]:
    match bucket:
        case Bucket.FORMS:
            return functionality.forms
        case Bucket.NAVIGATION:
            return functionality.navigational_elements
        case Bucket.INTERACTIVE:
            return functionality.interactive_elements
        case Bucket.CONTAINERS:
            return visual.containers
        case Bucket.LAYOUT:
            return visual.layout_elements
        case Bucket.CONTENT_BLOCKS:
            return visual.content_blocks
    raise ValueError(f"Unknown bucket: {bucket}")


def is_interactive(tag_name: str, attrs: List[AttributeRecord]) -> bool:
    return (
        tag_name in INTERACTIVE_TAGS
        or any(a.name.startswith("on") for a in attrs)
        or any(a.name == "role" and a.value in INTERACTIVE_ROLES for a in attrs)
    )


def functional_bucket(tag_name: str, attrs: List[AttributeRecord]) -> Bucket:
    if tag_name == "form" or any(a.name == "class" and "form" in a.value for a in attrs):
        return Bucket.FORMS
    if tag_name == "nav" or any(a.name in ("class", "id") and _NAV_HINT.search(a.value) for a in attrs):
        return Bucket.NAVIGATION
    return Bucket.INTERACTIVE


def visual_bucket(tag_name: str) -> Optional[Bucket]:
    if tag_name in CONTAINER_TAGS:
        return Bucket.CONTAINERS
    if tag_name in LAYOUT_TAGS:
        return Bucket.LAYOUT
    if tag_name in CONTENT_BLOCK_TAGS:
        return Bucket.CONTENT_BLOCKS
    return None


def summarize_content(fragments: Optional[List[str]]) -> str:
    if not fragments:
        return "No content"
    if len(fragments) > 5:
        return f"{' '.join(fragments[:3])}... ({len(fragments)} items)"
    return " ".join(fragments)


class ResultAggregatorService:
    """
    Partitions the tag and attribute records of a parsed document into the
    functional and the visual result view, plus their summary counters.
    """

    def __init__(self, result: ParseResult, classification: Optional[ClassificationOutcome] = None):
        self.result = result
        self.classification = classification or ClassificationOutcome()

    def _dump_attrs(self, tag_name: str) -> List[Dict[str, Any]]:
        return [a.model_dump() for a in self.result.attributes_for(tag_name)]

    def _children(self, tag: TagRecord) -> List[Dict[str, Any]]:
        return [
            {
                "name": child.name,
                "attributes": self._dump_attrs(child.name),
                "content": self.result.content.get(child.name),
            }
            for child in self.result.open_tags_between(tag)
        ]

    def _entry(self, bucket: Bucket, tag: TagRecord) -> Dict[str, Any]:
        content = self.result.content.get(tag.name)
        match bucket:
            case Bucket.FORMS | Bucket.NAVIGATION:
                return {
                    "position": tag.position,
                    "content": content,
                    "attributes": self._dump_attrs(tag.name),
                    "children": self._children(tag),
                }
            case Bucket.CONTAINERS:
                return {
                    "position": tag.position,
                    "attributes": self._dump_attrs(tag.name),
                    "children_count": len(self.result.open_tags_between(tag)),
                    "content_summary": summarize_content(content),
                }
            case Bucket.LAYOUT:
                return {
                    "position": tag.position,
                    "attributes": self._dump_attrs(tag.name),
                    "content_summary": summarize_content(content),
                }
            case _:
                return {
                    "position": tag.position,
                    "content": content,
                    "attributes": self._dump_attrs(tag.name),
                }

    def html_structure(self) -> List[Dict[str, Any]]:
        """Open tags among the first 50 tag records, with their nesting level."""
        structure = []
        stack: List[str] = []
        for tag in self.result.tags[:STRUCTURE_PREVIEW_LIMIT]:
            if tag.is_open:
                structure.append({
                    "name": tag.name,
                    "level": len(stack),
                    "attributes": [f"{a.name}={a.value}" for a in self.result.attributes_for(tag.name)],
                })
                stack.append(tag.name)
            elif stack and stack[-1] == tag.name:
                stack.pop()
        return structure

    def aggregate(self) -> Tuple[FunctionalityView, VisualView]:
        result = self.result
        functionality = FunctionalityView(
            css=result.assets_of(AssetKind.CSS),
            javascript=result.assets_of(AssetKind.JS),
            images=result.assets_of(AssetKind.IMAGE),
        )
        visual = VisualView(
            images=result.assets_of(AssetKind.IMAGE),
            meta_data=dict(result.meta_data),
            title=result.title,
        )

        functional_names = set()
        for tag in result.open_tags:
            attrs = result.attributes_for(tag.name)
            if not is_interactive(tag.name, attrs):
                continue
            bucket = functional_bucket(tag.name, attrs)
            destination(bucket, functionality, visual).setdefault(tag.name, []).append(self._entry(bucket, tag))
            functional_names.add(tag.name)

        for tag in result.open_tags:
            if tag.name in functional_names:
                continue
            bucket = visual_bucket(tag.name)
            if bucket is None:
                continue
            destination(bucket, functionality, visual).setdefault(tag.name, []).append(self._entry(bucket, tag))

        visual.html_structure = self.html_structure()
        functionality.ai_analysis = self._functionality_counters(functionality)
        visual.ai_analysis = self._visual_counters(visual)

        logger.info(
            "Aggregated %d interactive, %d form and %d navigation entries; %d containers, %d layout, %d content blocks.",
            functionality.ai_analysis["interactive_elements_count"], functionality.ai_analysis["forms_count"],
            functionality.ai_analysis["navigation_elements_count"], visual.ai_analysis["containers_count"],
            visual.ai_analysis["layout_elements_count"], visual.ai_analysis["content_blocks_count"],
        )
        return functionality, visual

    @staticmethod
    def _count(groups: Dict[str, List[Any]]) -> int:
        return sum(len(v) for v in groups.values())

    def _functionality_counters(self, view: FunctionalityView) -> Dict[str, Any]:
        assets = view.css + view.javascript + view.images
        return {
            "interactive_elements_count": self._count(view.interactive_elements),
            "forms_count": self._count(view.forms),
            "navigation_elements_count": self._count(view.navigational_elements),
            "js_files_count": len(view.javascript),
            "css_files_count": len(view.css),
            "image_files_count": len(view.images),
            "resolved_assets_count": sum(1 for a in assets if a.resolved),
            "predicted_interactive_count": self.classification.interactive_count,
            "predicted_visual_count": self.classification.visual_count,
            "predicted_content": dict(self.classification.predicted_content),
            "classifier_fallback_used": self.classification.used_fallback,
            "classifier_failure": self.classification.failure.value if self.classification.failure else None,
        }

    def _visual_counters(self, view: VisualView) -> Dict[str, Any]:
        return {
            "containers_count": self._count(view.containers),
            "layout_elements_count": self._count(view.layout_elements),
            "content_blocks_count": self._count(view.content_blocks),
            "images_count": len(view.images),
            "structure_preview_count": len(view.html_structure),
        }
