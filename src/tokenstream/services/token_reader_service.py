from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Union

from tokenstream.model import Token, TokenKind

logger = logging.getLogger(__name__)

_KINDS = {kind.value: kind for kind in TokenKind}


class TokenReaderService:
    """
    Reads the token files written by the external tokenizer.

    Two layouts are understood:
      * plain text, one `kind` line followed by one `value` line per token;
      * JSON, a list of {"kind": ..., "value": ...} objects.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read_tokens(self) -> List[Token]:
        if not self.path.exists():
            raise FileNotFoundError(f"Token file not found: {self.path}")

        if self.path.suffix.lower() == ".json":
            tokens = self._read_json()
        else:
            with open(self.path, "r", encoding="utf-8", errors="replace") as f:
                tokens = self.parse_lines(f.read().splitlines())

        logger.info("Read %d tokens from %s", len(tokens), self.path)
        return tokens

    def _read_json(self) -> List[Token]:
        with open(self.path, "r", encoding="utf-8", errors="replace") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                logger.error("StreamFormatError: %s is not valid JSON (%s), no tokens read.", self.path, e)
                return []
        if not isinstance(data, list):
            logger.warning("StreamFormatError: %s does not contain a token list.", self.path)
            return []

        tokens = []
        for i, item in enumerate(data):
            kind = _KINDS.get(str(item.get("kind", "")).strip()) if isinstance(item, dict) else None
            if kind is None:
                logger.warning("StreamFormatError: skipping token #%d with unknown layout: %r", i, item)
                continue
            tokens.append(Token(kind=kind, value=item.get("value", "")))
        return tokens

    @staticmethod
    def parse_lines(lines: List[str]) -> List[Token]:
        """
        Pairs kind lines with the value line that follows them.
        An unknown kind line is skipped on its own so the reader can resync.
        """
        tokens: List[Token] = []
        i = 0
        while i < len(lines):
            kind = _KINDS.get(lines[i].strip())
            if kind is None:
                if lines[i].strip():
                    logger.warning("StreamFormatError: unexpected line %d %r, resyncing.", i, lines[i])
                i += 1
                continue
            if i + 1 >= len(lines):
                logger.warning("StreamFormatError: token stream ends after kind '%s' without a value.", kind.value)
                break
            tokens.append(Token(kind=kind, value=lines[i + 1]))
            i += 2
        return tokens
