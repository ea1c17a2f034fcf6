"""
Record identifiers.

A row is addressed either by the sequential integer assigned by the local
relational store (LocalId) or by the opaque string assigned by the document
store (RemoteId). Callers hold one Identifier and let the active Storage
backend decide which column it resolves against.

Reference columns (order_items.product_id, purchases.supplier_id, ...) are
persisted as text and decoded per field, so a local row may point at a
remotely-identified parent while data is being migrated.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from .time_utils import ms_to_iso
from .validation import ValidationError


@dataclass(frozen=True)
class LocalId:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class RemoteId:
    value: str

    def __str__(self) -> str:
        return self.value


Identifier = Union[LocalId, RemoteId]


def parse_identifier(raw: Any) -> Identifier:
    """
    Numeric -> LocalId, any other non-empty string -> RemoteId.

    Raises ValidationError for None / blank / unsupported values.
    """
    if isinstance(raw, (LocalId, RemoteId)):
        return raw
    if raw is None or isinstance(raw, bool):
        raise ValidationError("missing required identifier")
    if isinstance(raw, int):
        return LocalId(raw)
    if isinstance(raw, float):
        if raw.is_integer():
            return LocalId(int(raw))
        raise ValidationError(f"invalid identifier: {raw!r}")
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            raise ValidationError("missing required identifier")
        if s.isdigit():
            return LocalId(int(s))
        return RemoteId(s)
    # bson.ObjectId and friends
    s = str(raw).strip()
    if not s:
        raise ValidationError("missing required identifier")
    return RemoteId(s)


def parse_optional_identifier(raw: Any) -> Optional[Identifier]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return parse_identifier(raw)


def encode_reference(ident: Optional[Identifier]) -> Optional[str]:
    """Text form stored in reference columns."""
    if ident is None:
        return None
    return str(ident)


def identifier_json(ident: Optional[Identifier]) -> Any:
    """JSON form: int for LocalId, str for RemoteId."""
    if ident is None:
        return None
    return ident.value


# Epoch-millisecond columns rendered as ISO-8601 in JSON responses
_TIMESTAMP_FIELDS = ("created_at", "updated_at", "completed_at", "opened_at", "closed_at")


def row_to_json(row: dict) -> dict:
    out = {}
    for key, value in row.items():
        if isinstance(value, (LocalId, RemoteId)):
            out[key] = value.value
        elif key in _TIMESTAMP_FIELDS:
            out[key] = ms_to_iso(value)
        else:
            out[key] = value
    return out
