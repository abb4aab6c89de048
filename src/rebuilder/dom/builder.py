# src/rebuilder/dom/builder.py
import logging
import re
from typing import Dict, List, Optional, Sequence

from fetcher.model import AssetKind, AssetReference
from .models import DOCTYPE_TAG, DOCUMENT_TAG, MirrorDocument, ReconstructedNode

logger = logging.getLogger(__name__)

VOID_ELEMENTS = frozenset({"img", "br", "hr", "meta", "link", "input", "source"})
SKELETON_TAGS = frozenset({"html", "body", "head"})
HEAD_ONLY_TAGS = frozenset({"base", "meta", "title"})

DEFAULT_STYLESHEET = (
    "body { font-family: Arial, sans-serif; margin: 0; padding: 0; line-height: 1.6; }\n"
    "img { max-width: 100%; height: auto; }\n"
    "@media (max-width: 768px) { body { font-size: 16px; } }\n"
)
FALLBACK_TEXT = "No content was parsed from the input file."

# '<name attr="value" ...>inline text' - buffer values never contain double quotes.
_OPEN_FRAGMENT = re.compile(r'^<([A-Za-z][\w:.-]*)((?:\s+[^\s=>"]+="[^"]*")*)\s*/?>(.*)$', re.DOTALL)
_CLOSE_FRAGMENT = re.compile(r'^</\s*([A-Za-z][\w:.-]*)')
_TAG_NAME = re.compile(r'^<([A-Za-z][\w:.-]*)')
_ATTRIBUTE = re.compile(r'([^\s=>"]+)="([^"]*)"')
_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')


def strip_control_chars(value: str) -> str:
    return _CONTROL_CHARS.sub("", value)


def parse_attributes(attr_text: str) -> Dict[str, str]:
    return {name: strip_control_chars(value) for name, value in _ATTRIBUTE.findall(attr_text)}


class _Frame:
    """Parent-stack entry: the parent to return to and whether the open tag was dropped."""
    __slots__ = ("tag", "parent", "skipped")

    def __init__(self, tag: str, parent: ReconstructedNode, skipped: bool):
        self.tag = tag
        self.parent = parent
        self.skipped = skipped


class TreeReconstructor:
    """
    Second pass: turns the (URL-rewritten) rebuild buffer into a nested document
    tree inside a fixed, self-contained HTML skeleton.
    """

    def __init__(self, base_url: str):
        self.base_url = base_url

    def build(
            self,
            buffer: Sequence[str],
            title: Optional[str],
            assets: Sequence[AssetReference],
    ) -> MirrorDocument:
        document = self._build_skeleton(buffer, title, assets)

        if not buffer:
            logger.warning("Rebuild buffer is empty, inserting fallback content.")
            document.main.append(ReconstructedNode(tag="div", text=FALLBACK_TEXT))
            return document

        self._walk(buffer, document)
        return document

    # -------- Skeleton --------

    def _build_skeleton(
            self,
            buffer: Sequence[str],
            title: Optional[str],
            assets: Sequence[AssetReference],
    ) -> MirrorDocument:
        root = ReconstructedNode(tag=DOCUMENT_TAG)
        root.append(ReconstructedNode(tag=DOCTYPE_TAG, text="html"))
        html = root.append(ReconstructedNode(tag="html", attrs={"lang": "en"}))
        head = html.append(ReconstructedNode(tag="head"))
        head_refs: List[str] = []

        head.append(ReconstructedNode(
            tag="meta", attrs={"name": "viewport", "content": "width=device-width, initial-scale=1.0"}
        ))
        head.append(ReconstructedNode(tag="meta", attrs={"charset": "utf-8"}))
        head.append(ReconstructedNode(tag="title", text=title or "Mirrored Site"))

        favicon = next(
            (a for a in assets if a.kind == AssetKind.IMAGE and ("favicon" in a.url or "icon" in a.url)),
            None
        )
        if favicon and favicon.local_path:
            head.append(ReconstructedNode(tag="link", attrs={"rel": "icon", "href": favicon.local_path}))
            head_refs.extend([favicon.url, favicon.local_path])

        placed_css = set()
        for css in assets:
            if css.kind != AssetKind.CSS or not css.local_path or css.local_path in placed_css:
                continue
            head.append(ReconstructedNode(tag="link", attrs={"rel": "stylesheet", "href": css.local_path}))
            placed_css.add(css.local_path)
            head_refs.extend([css.url, css.local_path])

        head.append(ReconstructedNode(tag="style", text=DEFAULT_STYLESHEET))

        placed_js = set()
        for js in assets:
            if js.kind != AssetKind.JS or not js.local_path or js.local_path in placed_js:
                continue
            if any(js.local_path in fragment for fragment in buffer):
                continue
            head.append(ReconstructedNode(tag="script", attrs={
                "src": js.local_path, "defer": "defer", "data-xf-init": "disable-lazy-load"
            }))
            placed_js.add(js.local_path)
            head_refs.extend([js.url, js.local_path])

        body = html.append(ReconstructedNode(tag="body"))
        body.append(ReconstructedNode(
            tag="div",
            attrs={"style": "padding: 5px; background: #f9f9f9; color: #666; font-size: 12px; text-align: center;"},
            text=f"This is a mirrored site for analysis purposes - original URL: {self.base_url}",
        ))
        noscript = body.append(ReconstructedNode(tag="noscript"))
        noscript.append(ReconstructedNode(
            tag="div",
            attrs={"style": "color: red; padding: 10px; text-align: center;"},
            text="JavaScript is disabled. Some functionality may not work.",
        ))
        main = body.append(ReconstructedNode(
            tag="div",
            attrs={"class": "mirror-container", "style": "max-width: 1200px; margin: 0 auto; padding: 15px;"},
        ))

        return MirrorDocument(root=root, head=head, body=body, main=main, head_asset_refs=head_refs)

    # -------- Buffer walk --------

    def _should_skip(self, tag: str, attr_text: str, parent: ReconstructedNode, document: MirrorDocument) -> bool:
        if tag in HEAD_ONLY_TAGS and parent is not document.head:
            return True
        if tag in SKELETON_TAGS:
            return True
        if tag in ("script", "link"):
            return any(ref and ref in attr_text for ref in document.head_asset_refs)
        return False

    def _walk(self, buffer: Sequence[str], document: MirrorDocument) -> None:
        current = document.main
        frames: List[_Frame] = []

        for fragment in buffer:
            if fragment.startswith("</"):
                match = _CLOSE_FRAGMENT.match(fragment)
                tag = match.group(1) if match else ""
                if not tag or tag in SKELETON_TAGS or tag in VOID_ELEMENTS:
                    continue
                if frames:
                    current = frames.pop().parent
                continue

            if fragment.startswith("<"):
                match = _OPEN_FRAGMENT.match(fragment)
                if not match:
                    logger.debug("Unparseable fragment kept as text: %.60r", fragment)
                    current.append(ReconstructedNode.text_node(fragment))
                    name = _TAG_NAME.match(fragment)
                    if name and name.group(1) not in SKELETON_TAGS and name.group(1) not in VOID_ELEMENTS:
                        # Its close tag still arrives and must not pop the parent.
                        frames.append(_Frame(name.group(1), current, skipped=True))
                    continue

                tag, attr_text, inline = match.group(1), match.group(2), match.group(3)
                if self._should_skip(tag, attr_text, current, document):
                    if tag not in SKELETON_TAGS and tag not in VOID_ELEMENTS:
                        frames.append(_Frame(tag, current, skipped=True))
                    continue

                node = ReconstructedNode(tag=tag, attrs=parse_attributes(attr_text))
                if inline:
                    node.text = inline
                current.append(node)
                if tag not in VOID_ELEMENTS:
                    frames.append(_Frame(tag, current, skipped=False))
                    current = node
                continue

            if fragment.strip():
                current.append(ReconstructedNode.text_node(fragment))
