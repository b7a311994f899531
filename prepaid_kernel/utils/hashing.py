"""
Canonical JSON and the audit hash chain.

Audit payloads carry Decimals, dates, UUIDs and status enums.  They are
rendered to one canonical text form (sorted keys, compact separators, every
typed value as a string) so the stored JSON document and its hash never
depend on dict ordering or on the database's JSON round-trip.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CHAIN_ORIGIN = "GENESIS"


def _encode_ledger_value(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"{type(obj).__name__} cannot appear in an audit payload")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_ledger_value)


def to_json_document(data: dict[str, Any]) -> dict[str, Any]:
    """Plain-JSON copy of ``data`` suitable for a JSON column or snapshot."""
    return json.loads(canonicalize_json(data))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return sha256_hex(canonicalize_json(payload))


def chain_hash(
    seq: int,
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Hash of one audit event linked to its predecessor.

    ``seq`` is part of the input, so reordering events breaks the chain just
    as editing one does.
    """
    parts = (str(seq), entity_type, str(entity_id), action, payload_hash, prev_hash or CHAIN_ORIGIN)
    return sha256_hex("|".join(parts))
