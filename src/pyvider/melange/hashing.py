"""
Content-derived identities used as change-detection tokens.

An identity is the SHA-256 hex digest of a canonical JSON rendering of a value.
Mapping keys are sorted before rendering, so two values that differ only by
key order share an identity. Sequence order is preserved and significant.
"""

from collections.abc import Mapping
import datetime
import enum
import hashlib
import json
from pathlib import PurePath
from typing import Any

import attrs

from .exceptions import IdentityError


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, enum.Enum):
        return value.value if isinstance(value.value, (str, int)) else str(value)
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if hasattr(value, "to_dict") and callable(value.to_dict):
        return _normalize(value.to_dict())
    if attrs.has(type(value)):
        return _normalize(attrs.asdict(value, recurse=False))
    if isinstance(value, Mapping):
        return {str(_normalize(key)): _normalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, (set, frozenset)):
        items = [_normalize(item) for item in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    raise IdentityError(
        f"Cannot derive an identity from a value of type {type(value).__name__}."
    )


def canonicalize(value: Any) -> bytes:
    """Renders a value as canonical JSON bytes."""
    normalized = _normalize(value)
    try:
        rendered = json.dumps(
            normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
    except (TypeError, ValueError) as e:
        raise IdentityError(f"Value is not serializable: {e}") from e
    return rendered.encode("utf-8")


def compute_identity(value: Any) -> str:
    return hashlib.sha256(canonicalize(value)).hexdigest()


def content_identity(text: str | bytes) -> str:
    """Identity of raw definition text, before any parsing."""
    if isinstance(text, str):
        text = text.encode("utf-8")
    return hashlib.sha256(text).hexdigest()
