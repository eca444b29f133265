"""
Typed records passed between storage, the tail service and the feed client.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .codec import RecordKey, decode_cursor, encode_cursor


def _freeze(value: Any) -> Any:
    """Copy a JSON-like value into read-only form: mappings to proxies, lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    """Inverse of _freeze, producing plain JSON-serializable dicts and lists."""
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class Event:
    """
    A single record from one category. Immutable once handed out: fields are
    copied on construction and nested objects/arrays are frozen too.
    """

    key: RecordKey
    category: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fields", _freeze(self.fields))

    @property
    def id(self) -> str:
        return encode_cursor(self.key)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: the key travels as its cursor encoding."""
        return {"id": self.id, "category": self.category, "fields": _thaw(self.fields)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Event":
        """Inverse of to_dict. Raises InvalidCursor for a bad id, KeyError/TypeError for bad shape."""
        fields = data.get("fields") or {}
        if not isinstance(fields, Mapping):
            raise TypeError("event fields must be an object")
        return cls(key=decode_cursor(data["id"]), category=str(data["category"]), fields=fields)


@dataclass(frozen=True)
class BootstrapResult:
    cursor: Optional[str]
    empty: bool


@dataclass(frozen=True)
class TailResult:
    items: Tuple[Event, ...]
    next_cursor: Optional[str]
    count: int
    server_time: datetime


@dataclass(frozen=True)
class CollectionStats:
    collection: str
    count: int
    newest: Optional[str]
    oldest: Optional[str]
    server_time: datetime
