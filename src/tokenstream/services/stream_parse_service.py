# src/tokenstream/services/stream_parse_service.py
"""
First pass over the token stream.

Every step function takes the explicit ParseState, the full token list and the
index of the token being consumed. The state is the only thing they mutate, so
a parse can be replayed or inspected token by token in isolation.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from fetcher.model import AssetKind, AssetReference
from fetcher.utils.url_utils import UrlUtils
from tokenstream.model import AttributeRecord, ParseResult, ParseState, TagRecord, Token, TokenKind

logger = logging.getLogger(__name__)

FUNCTIONAL_TAGS = frozenset({"button", "a", "form", "input", "select", "option", "textarea"})

_KEY_JUNK = re.compile(r'["\'\\]')
_VALUE_JUNK = re.compile(r'["\\]')
_BAD_KEY = re.compile(r'[\s=>/<]')


# -------- Buffer helpers --------

def _is_open_fragment(fragment: str) -> bool:
    return fragment.startswith("<") and not fragment.startswith("</")


def _terminate_open_entry(state: ParseState) -> None:
    """Closes the head of the last open-tag entry with '>' if it is still pending."""
    if state.open_entry and state.open_tag_end is None:
        state.open_tag_end = len(state.buffer[-1])
        state.buffer[-1] += ">"


def _start_entry(state: ParseState, fragment: str, is_open: bool) -> None:
    _terminate_open_entry(state)
    state.buffer.append(fragment)
    state.open_entry = is_open
    state.open_tag_end = None


def _register_asset(state: ParseState, kind: AssetKind, url: str) -> None:
    if not url:
        return
    state.assets.append(AssetReference(kind=kind, url=url))
    logger.debug("Detected %s asset: %s", kind.value.upper(), url)


def _peek(tokens: Sequence[Token], index: int) -> Optional[Token]:
    return tokens[index] if 0 <= index < len(tokens) else None


def split_attribute(raw: str) -> Optional[tuple]:
    """
    Splits 'key="value"' on the first '='.
    Returns None for text without '=', with an empty key, or with a key
    that could not be written back as an attribute name.
    """
    if "=" not in raw:
        return None
    key, value = raw.split("=", 1)
    key = _KEY_JUNK.sub("", key).strip()
    value = _VALUE_JUNK.sub("", value).strip()
    if not key or _BAD_KEY.search(key):
        return None
    return key, value


# -------- Step functions --------

def apply_tag_open(state: ParseState, tokens: Sequence[Token], index: int) -> None:
    name = tokens[index].value.strip()
    if not name:
        logger.warning("StreamFormatError: empty tag name at token %d, skipped.", index)
        state.warnings.append(f"Empty tag name at token {index}")
        return

    state.tags.append(TagRecord(name=name, position=index, type="open"))
    state.tag_stack.append(name)
    state.current_tag = name
    _start_entry(state, f"<{name}", is_open=True)
    if name == "head":
        state.in_head = True


def apply_attribute(state: ParseState, tokens: Sequence[Token], index: int) -> None:
    tag = state.current_tag
    if tag is None:
        return
    parts = split_attribute(tokens[index].value)
    if parts is None:
        return
    name, value = parts

    state.attributes.append(AttributeRecord(tag=tag, name=name, value=value, in_head=state.in_head))

    attr_text = f' {name}="{value}"'
    entry = ""
    if state.buffer and state.open_entry:
        entry = state.buffer[-1]
        if state.open_tag_end is None:
            entry += attr_text
        else:
            cut = state.open_tag_end
            entry = entry[:cut] + attr_text + entry[cut:]
            state.open_tag_end = cut + len(attr_text)
        state.buffer[-1] = entry

    if tag == "script" and name == "src":
        if UrlUtils.is_tracker(value):
            logger.info("Skipping tracking script: %s", value)
        else:
            _register_asset(state, AssetKind.JS, value)

    if (tag == "img" and name == "src") or (tag == "link" and name == "href" and 'rel="icon"' in entry):
        if "var(" in value:
            logger.info("Skipping invalid image URL with CSS variable: %s", value)
        else:
            _register_asset(state, AssetKind.IMAGE, value)

    if tag == "link" and name == "href" and 'rel="stylesheet"' in entry:
        _register_asset(state, AssetKind.CSS, value)

    if tag == "title":
        following = _peek(tokens, index + 1)
        if following is not None and following.kind == TokenKind.WORD and following.value.strip():
            state.title = following.value.strip()

    if tag == "meta" and name == "name":
        following = _peek(tokens, index + 1)
        if following is not None and following.kind == TokenKind.ATTRIBUTE and "content=" in following.value:
            content_parts = split_attribute(following.value)
            if content_parts is not None:
                state.meta_data[value] = content_parts[1]


def apply_word(state: ParseState, tokens: Sequence[Token], index: int) -> None:
    tag = state.current_tag
    text = tokens[index].value.strip()
    if tag is None or not text:
        return

    fragments = state.content.setdefault(tag, [])
    if text not in fragments:
        fragments.append(text)

    target = state.functional_content if tag in FUNCTIONAL_TAGS else state.visual_content
    target.setdefault(tag, []).append(text)

    if tag == "title" and not state.title:
        state.title = text

    if state.buffer and state.open_entry:
        pending = state.open_tag_end is None
        _terminate_open_entry(state)
        state.buffer[-1] += text if pending else f" {text}"
    elif state.buffer and not state.buffer[-1].startswith("<"):
        state.buffer[-1] += f" {text}"
    else:
        _start_entry(state, text, is_open=False)


def apply_tag_close(state: ParseState, tokens: Sequence[Token], index: int) -> None:
    name = tokens[index].value.strip()
    if not name:
        logger.warning("StreamFormatError: empty closing tag name at token %d, skipped.", index)
        state.warnings.append(f"Empty closing tag name at token {index}")
        return

    state.tags.append(TagRecord(name=name, position=index, type="close"))
    if state.tag_stack and state.tag_stack[-1] == name:
        state.tag_stack.pop()
    else:
        message = f"Unbalanced tag </{name}> at token {index}, missing opening tag"
        logger.warning("UnbalancedTagWarning: %s", message)
        state.warnings.append(message)

    state.current_tag = state.tag_stack[-1] if state.tag_stack else None
    _start_entry(state, f"</{name}>", is_open=False)
    if name == "head":
        state.in_head = False


STEP_FUNCTIONS: Dict[TokenKind, Callable[[ParseState, Sequence[Token], int], None]] = {
    TokenKind.TAG_OPEN: apply_tag_open,
    TokenKind.ATTRIBUTE: apply_attribute,
    TokenKind.WORD: apply_word,
    TokenKind.TAG_CLOSE: apply_tag_close,
}


# -------- Driver --------

def coerce_tokens(raw_tokens: Sequence[Union[Token, Mapping[str, Any]]]) -> List[Token]:
    """Validates raw {kind, value} pairs; malformed entries are logged and dropped."""
    tokens: List[Token] = []
    for i, raw in enumerate(raw_tokens):
        if isinstance(raw, Token):
            tokens.append(raw)
            continue
        try:
            tokens.append(Token.model_validate(raw))
        except ValidationError as e:
            logger.warning("StreamFormatError: dropping malformed token #%d (%r): %s", i, raw, e.errors()[0]["msg"])
    return tokens


def finalize_buffer(buffer: List[str]) -> List[str]:
    """Gives every fragment that still looks like an unterminated open tag its '>'."""
    return [f"{frag}>" if _is_open_fragment(frag) and ">" not in frag else frag for frag in buffer]


def parse_tokens(raw_tokens: Sequence[Union[Token, Mapping[str, Any]]]) -> ParseResult:
    """
    Consumes the whole token stream and returns the records, content maps,
    asset references and the rebuild buffer for the second pass.
    """
    tokens = coerce_tokens(raw_tokens)
    state = ParseState()

    for index, token in enumerate(tokens):
        STEP_FUNCTIONS[token.kind](state, tokens, index)

    _terminate_open_entry(state)
    state.buffer = finalize_buffer(state.buffer)

    if state.tag_stack:
        logger.debug("Stream ended with %d unclosed tag(s): %s", len(state.tag_stack), state.tag_stack)

    logger.info(
        "Parsed %d tokens: %d tags, %d attributes, %d asset references, %d warnings.",
        len(tokens), len(state.tags), len(state.attributes), len(state.assets), len(state.warnings)
    )

    return ParseResult(
        buffer=state.buffer,
        tags=state.tags,
        attributes=state.attributes,
        content=state.content,
        functional_content=state.functional_content,
        visual_content=state.visual_content,
        assets=state.assets,
        title=state.title,
        meta_data=state.meta_data,
        warnings=state.warnings,
        open_stack=list(state.tag_stack),
    )
