# src/rebuilder/dom/serializer.py
import logging

from bs4 import BeautifulSoup, Doctype, NavigableString, Tag
from bs4.element import Script, Stylesheet

from .builder import VOID_ELEMENTS, strip_control_chars
from .models import DOCTYPE_TAG, MirrorDocument, ReconstructedNode

logger = logging.getLogger(__name__)


class DocumentSerializer:
    """
    Renders a MirrorDocument to markup through BeautifulSoup so text and
    attribute values get the 'minimal' escaping (&, <, > and quotes).
    """

    def __init__(self, pretty: bool = True):
        self.pretty = pretty

    def to_soup(self, document: MirrorDocument) -> BeautifulSoup:
        soup = BeautifulSoup("", "html.parser")
        for child in document.root.children:
            if child.tag == DOCTYPE_TAG:
                try:
                    soup.append(Doctype.for_name_and_ids(child.text or "html", None, None))
                except (TypeError, ValueError) as e:
                    logger.warning("SerializationWarning: could not create DOCTYPE: %s", e)
                continue
            self._append(soup, soup, child)
        return soup

    def serialize(self, document: MirrorDocument) -> str:
        soup = self.to_soup(document)
        if self.pretty:
            return soup.prettify(formatter="minimal")
        return soup.decode(formatter="minimal")

    def _append(self, soup: BeautifulSoup, parent: Tag, node: ReconstructedNode) -> None:
        if node.is_text:
            if node.text:
                parent.append(self._string_for(getattr(parent, "name", None), strip_control_chars(node.text)))
            return

        attrs = {name: strip_control_chars(value) for name, value in node.attrs.items()}
        tag = soup.new_tag(node.tag, attrs=attrs)
        parent.append(tag)

        if node.text:
            text = self._string_for(node.tag, node.text)
            # Void elements cannot hold content; their inline text follows them.
            if node.tag in VOID_ELEMENTS:
                parent.append(text)
            else:
                tag.append(text)

        for child in node.children:
            self._append(soup, tag, child)

    @staticmethod
    def _string_for(tag_name, text: str) -> NavigableString:
        # Script and style bodies are emitted verbatim, without entity escaping.
        if tag_name == "style":
            return Stylesheet(text)
        if tag_name == "script":
            return Script(text)
        return NavigableString(text)
