from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from fetcher.utils.url_utils import UrlUtils
from tokenstream.model import Token, TokenKind
from tokenstream.services.stream_parse_service import split_attribute

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://example.com"
_URL_IN_TEXT = re.compile(r"https?://[^\s\"'\\]+")


def _attribute_groups(tokens: Sequence[Token]):
    """Yields (tag name, {attr: value}) for every opened tag, in stream order."""
    current = None
    attrs = {}
    for token in tokens:
        if token.kind == TokenKind.TAG_OPEN:
            if current is not None:
                yield current, attrs
            current, attrs = token.value.strip(), {}
        elif token.kind == TokenKind.ATTRIBUTE and current is not None:
            parts = split_attribute(token.value)
            if parts:
                attrs[parts[0]] = parts[1]
    if current is not None:
        yield current, attrs


def resolve_base_url(tokens: Sequence[Token], explicit: Optional[str] = None) -> str:
    """
    Determines the origin that relative asset URLs are resolved against.

    Precedence: explicit URL, <base href>, origin of <link rel="canonical">,
    origin of the first absolute URL anywhere in the stream, DEFAULT_BASE_URL.
    """
    if explicit:
        return UrlUtils.ensure_scheme(explicit)

    canonical = None
    for tag, attrs in _attribute_groups(tokens):
        href = attrs.get("href", "")
        if tag == "base" and href.startswith("http"):
            logger.info("Found base URL from <base href>: %s", href)
            return href
        if canonical is None and tag == "link" and attrs.get("rel") == "canonical" and href.startswith("http"):
            canonical = UrlUtils.get_base_url(href)

    if canonical:
        logger.info("Found base URL from canonical link: %s", canonical)
        return canonical

    for token in tokens:
        match = _URL_IN_TEXT.search(token.value)
        if match:
            origin = UrlUtils.get_base_url(match.group(0))
            if origin:
                logger.info("Found base URL from content: %s", origin)
                return origin

    logger.warning("No base URL found in the token stream, falling back to %s", DEFAULT_BASE_URL)
    return DEFAULT_BASE_URL
