import json
from typing import Any

from pydantic import BaseModel


def _default(obj: Any) -> Any:
    """Fallback encoder for pydantic models and sets inside the result views."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def to_json(data: Any, indent: int = 2, ensure_ascii: bool = False) -> str:
    """
    Convert a Python object (dicts, lists, pydantic models) to a JSON string.

    Args:
        data: The object to serialize.
        indent: Indentation level for pretty-printing (default: 2)
        ensure_ascii: If True, escape non-ASCII chars (default: False)
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    return json.dumps(data, ensure_ascii=ensure_ascii, indent=indent, default=_default)
