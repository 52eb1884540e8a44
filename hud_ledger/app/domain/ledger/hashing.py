"""
Ledger hash chaining.

Canonical encoding (must stay byte-stable across implementations):

    canonical = JSON object, keys sorted, separators (",", ":"), UTF-8,
                non-ASCII kept as-is, with the fields in HASHED_FIELDS
    amount      -> fixed two-decimal string, e.g. "1250.00"
    created_at  -> integer milliseconds since the Unix epoch (UTC)
    tenant_id   -> null when absent
    entry_hash  = sha256(canonical + previous_hash), lowercase hex

The first entry of every organization chain links to GENESIS_HASH.
"""

import calendar
import hashlib
import json
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

GENESIS_HASH = "0" * 64

HASHED_FIELDS = (
    "accounting_period",
    "amount",
    "created_at",
    "created_by",
    "description",
    "id",
    "is_period_closed",
    "organization_id",
    "property_id",
    "tenant_id",
    "transaction_type",
    "unit_id",
)

CENTS = Decimal("0.01")


def format_amount(amount: Any) -> str:
    """Fixed-precision amount string; never goes through float formatting."""
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return format(amount.quantize(CENTS, rounding=ROUND_HALF_UP), "f")


def to_epoch_millis(value: datetime) -> int:
    """UTC epoch milliseconds; naive datetimes are read as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return calendar.timegm(value.utctimetuple()) * 1000 + value.microsecond // 1000


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _unchanged(value: Any) -> Any:
    return value


def _optional_str(value: Any) -> Any:
    return str(value) if value else None


# Per-field encoders; fields not listed are hashed as str()
FIELD_ENCODERS = {
    "accounting_period": _unchanged,
    "amount": format_amount,
    "created_at": to_epoch_millis,
    "description": _unchanged,
    "is_period_closed": bool,
    "tenant_id": _optional_str,
    "transaction_type": _enum_value,
}


def canonical_fields(entry: Any) -> Dict[str, Any]:
    """Extract the HASHED_FIELDS from an ORM entity, a result row or a dict."""
    get = entry.get if isinstance(entry, dict) else lambda name: getattr(entry, name, None)
    return {name: FIELD_ENCODERS.get(name, str)(get(name)) for name in HASHED_FIELDS}


def canonical_content(entry: Any) -> str:
    return json.dumps(
        canonical_fields(entry),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_entry_hash(entry: Any, previous_hash: str) -> str:
    """
    Compute the chained SHA-256 hash of an entry.

    Pure function of the entry's immutable fields and its predecessor's hash:
    the stored `entry_hash` / `previous_hash` columns are never read here.
    """
    raw = f"{canonical_content(entry)}{previous_hash}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()
