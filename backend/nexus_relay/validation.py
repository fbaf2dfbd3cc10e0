from __future__ import annotations
import json
import math
import uuid
from datetime import datetime
from nexus_relay.time_utils import parse_iso_datetime, utcnow

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, BigInteger, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models import SyncTransaction
from .payload_utils import encode_metadata


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level conflict (e.g., transaction id already owned by another dealer)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary);
      any other key is dropped
    - required: fields that must be present and non-empty
    """
    writable_fields: frozenset[str]
    required: frozenset[str] = frozenset()


# Devices send whatever their local schema holds; anything not listed here
# (dealer_id, synced_at, local status flags, ...) is dropped, never trusted.
TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "id",
        "action_type",
        "item_sku",
        "item_name",
        "quantity_change",
        "old_value",
        "new_value",
        "transaction_time",
    }),
    required=frozenset({"action_type"}),
)

# Opaque snapshot columns: stored verbatim, never stripped or reinterpreted.
_OPAQUE_FIELDS = {"old_value", "new_value"}

_SERVER_DEFAULTED = {"id", "transaction_time", "quantity_change"}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, (Integer, BigInteger)):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower() or '.' in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Signed numeric deltas; sign and magnitude are the device's business
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, str):
            stripped = value.strip()
            try:
                value = int(stripped)
            except ValueError:
                try:
                    value = float(stripped)
                except ValueError:
                    raise ValidationError(f"{col.key} must be a number")
        if not isinstance(value, (int, float)):
            raise ValidationError(f"{col.key} must be a number")
        # inf/nan would be served back as bare Infinity/NaN tokens on pull
        if isinstance(value, float) and not math.isfinite(value):
            raise ValidationError(f"{col.key} must be a finite number")
        return value

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except Exception:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Opaque text keeps its exact bytes; structured values are JSON-encoded
    if col.key in _OPAQUE_FIELDS:
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required fields
    Returns a cleaned dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if _is_blank(payload.get(f)))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable and col.default is None:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def normalize_transaction(payload: Any) -> tuple[dict, bool]:
    """
    Turn one pushed transaction into column values for SyncTransaction.

    Returns (fields, manufactured_id). When the device sent no id a fresh
    UUID is minted; that record loses idempotency under retry.

    Raises ValidationError for anything that cannot be stored.
    """
    if not isinstance(payload, dict):
        raise ValidationError("transaction must be an object")

    # Absent and empty mean the same thing for server-defaulted fields
    cleaned = {
        k: v for k, v in payload.items()
        if not (k in _SERVER_DEFAULTED and _is_blank(v))
    }

    fields = validate_payload(
        model=SyncTransaction,
        payload=cleaned,
        policy=TRANSACTION_POLICY,
    )

    manufactured_id = False
    if not fields.get("id"):
        fields["id"] = str(uuid.uuid4())
        manufactured_id = True

    if fields.get("quantity_change") is None:
        fields["quantity_change"] = 0

    if fields.get("transaction_time") is None:
        fields["transaction_time"] = utcnow()

    try:
        fields["metadata_json"] = encode_metadata(payload.get("metadata"))
    except ValueError as e:
        raise ValidationError(str(e))

    return fields, manufactured_id
