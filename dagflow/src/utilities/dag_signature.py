import hashlib
import json
from typing import Any

from pydantic import BaseModel


def canonicalize(value: Any) -> Any:
    """Sort object keys recursively; arrays keep their order."""
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {key: canonicalize(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]
    return value


def compute_signature(dag: Any) -> str:
    """
    SHA-256 hex digest of the canonical JSON form of `dag`.

    `{"a": 1, "b": 2}` and `{"b": 2, "a": 1}` hash the same; reordering an
    array or changing any value does not.
    """
    canonical = json.dumps(canonicalize(dag), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
