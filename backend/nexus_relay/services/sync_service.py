# Overview: Service-layer delta sync operations (push, pull, heartbeat).

"""
Delta Sync Engine

DESIGN:
- Push is a sequence of independent idempotent appends, not one atomic
  batch. A bad record is reported and skipped; accepted siblings stay.
  Retrying a whole batch is always safe.
- Pull returns other devices' records after an explicit cursor
  (synced_at). The device resumes with next_cursor from the response.
- Every call is scoped to the dealer proven by the LicenseGrant.
- No in-process locks. Ordering and uniqueness come from the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..validation import ValidationError, ConflictError, normalize_transaction
from nexus_relay.payload_utils import is_unparseable
from nexus_relay.time_utils import utcnow
from . import activity_service, device_service, transaction_log_service
from .concurrency import run_with_retry
from .license_service import LicenseGrant
from .transaction_log_service import AppendOutcome


DEVICE_IDENTIFIER_MAX_LENGTH = 128


@dataclass
class PushResult:
    inserted: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    timestamp: Optional[datetime] = None

    @property
    def rejected(self) -> int:
        return len(self.errors)

    def reject(self, index: int, transaction_id: Any, message: str) -> None:
        self.errors.append({"index": index, "id": transaction_id, "message": message})


@dataclass
class PullResult:
    transactions: list[dict] = field(default_factory=list)
    next_cursor: int = 0
    has_more: bool = False
    timestamp: Optional[datetime] = None

    @property
    def count(self) -> int:
        return len(self.transactions)


def require_device_identifier(value: Any) -> str:
    """Call-level check: every push/pull/heartbeat names its device."""
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValidationError("Missing device_identifier")
    identifier = str(value).strip()
    if not identifier:
        raise ValidationError("Missing device_identifier")
    if len(identifier) > DEVICE_IDENTIFIER_MAX_LENGTH:
        raise ValidationError(f"device_identifier exceeds max length {DEVICE_IDENTIFIER_MAX_LENGTH}")
    return identifier


def parse_cursor(since: Any) -> int:
    """
    Normalize a pull cursor. Absent/empty/0 means "from the beginning".

    Cursors are synced_at sequence values; wall-clock strings are rejected
    rather than guessed at.
    """
    if since is None or since == "":
        return 0
    if isinstance(since, bool):
        raise ValidationError("since must be a non-negative integer cursor")
    if isinstance(since, int):
        cursor = since
    elif isinstance(since, str) and since.strip().isdigit():
        cursor = int(since.strip())
    else:
        raise ValidationError("since must be a non-negative integer cursor")
    if cursor < 0:
        raise ValidationError("since must be a non-negative integer cursor")
    return cursor


def parse_pending_count(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("pending_count must be a non-negative integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 0:
        raise ValidationError("pending_count must be a non-negative integer")
    return value


def push_transactions(
    *,
    grant: LicenseGrant,
    device_identifier: Any,
    transactions: Any,
    ip_address: str | None = None,
) -> PushResult:
    """
    Accept a batch of locally generated transactions from one device.

    Raises:
        ValidationError for call-level problems (no device, not a list,
        batch too large). Per-record problems land in PushResult.errors.
        StorageUnavailable if the database stays down; already committed
        records remain and the batch can be resent.
    """
    device_identifier = require_device_identifier(device_identifier)
    if not isinstance(transactions, list):
        raise ValidationError("transactions must be an array")

    max_batch = current_app.config.get("SYNC_MAX_BATCH_SIZE", 5000)
    if len(transactions) > max_batch:
        raise ValidationError(f"Batch too large: {len(transactions)} > {max_batch}")

    dealer_id = grant.dealer_id
    result = PushResult()

    for index, raw in enumerate(transactions):
        raw_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            fields, manufactured_id = normalize_transaction(raw)
            if manufactured_id:
                current_app.logger.info(
                    "Assigned id %s to transaction %d from device %s (no client id)",
                    fields["id"], index, device_identifier,
                )
            outcome = transaction_log_service.append_transaction(
                dealer_id=dealer_id,
                device_identifier=device_identifier,
                fields=fields,
            )
        except (ValidationError, ConflictError) as e:
            db.session.rollback()
            result.reject(index, raw_id, str(e))
            current_app.logger.warning(
                "Rejected transaction %d from device %s: %s", index, device_identifier, e
            )
            continue
        except IntegrityError:
            db.session.rollback()
            result.reject(index, raw_id, "Transaction could not be stored")
            current_app.logger.exception(
                "Integrity failure storing transaction %d from device %s", index, device_identifier
            )
            continue

        if outcome is AppendOutcome.INSERTED:
            result.inserted += 1
        else:
            result.skipped += 1

    now = utcnow()
    device_service.touch_device(
        dealer_id=dealer_id,
        device_identifier=device_identifier,
        license_id=grant.license_id,
        ip_address=ip_address,
        now=now,
    )
    device_service.record_sync_state(
        dealer_id=dealer_id,
        device_identifier=device_identifier,
        sent_at=now,
    )

    activity_service.log_activity(
        dealer_id,
        "SYNC_PUSH",
        f"Device: {device_identifier}, Inserted: {result.inserted}, "
        f"Skipped: {result.skipped}, Rejected: {result.rejected}",
        ip_address,
    )

    result.timestamp = now
    return result


def pull_transactions(
    *,
    grant: LicenseGrant,
    device_identifier: Any,
    since: Any = None,
    ip_address: str | None = None,
    limit: int | None = None,
) -> PullResult:
    """
    Return other devices' records accepted after `since`.

    Never returns the requester's own records or another dealer's. A record
    with undecodable metadata is returned with an unparseable marker instead
    of failing the page.
    """
    device_identifier = require_device_identifier(device_identifier)
    cursor = parse_cursor(since)
    page_size = limit or current_app.config.get("SYNC_PULL_PAGE_SIZE", 1000)

    page = run_with_retry(lambda: transaction_log_service.query_after(
        dealer_id=grant.dealer_id,
        excluding_device=device_identifier,
        cursor=cursor,
        limit=page_size,
    ))

    items = [txn.to_dict() for txn in page.records]
    bad_metadata = [item["id"] for item in items if is_unparseable(item["metadata"])]
    if bad_metadata:
        current_app.logger.warning(
            "Returned %d transaction(s) with unparseable metadata to device %s: %s",
            len(bad_metadata), device_identifier, ", ".join(bad_metadata[:10]),
        )

    now = utcnow()
    device_service.touch_device(
        dealer_id=grant.dealer_id,
        device_identifier=device_identifier,
        license_id=grant.license_id,
        ip_address=ip_address,
        now=now,
    )
    # Empty pages leave last_received_at alone
    if items:
        device_service.record_sync_state(
            dealer_id=grant.dealer_id,
            device_identifier=device_identifier,
            received_at=now,
        )

    return PullResult(
        transactions=items,
        next_cursor=page.next_cursor,
        has_more=page.has_more,
        timestamp=now,
    )


def heartbeat(
    *,
    grant: LicenseGrant,
    device_identifier: Any,
    device_name: Any = None,
    pending_count: Any = None,
    ip_address: str | None = None,
) -> datetime:
    """Presence-only contact. Touches the device row, nothing else."""
    device_identifier = require_device_identifier(device_identifier)
    pending = parse_pending_count(pending_count)
    if device_name is not None and not isinstance(device_name, str):
        raise ValidationError("device_name must be a string")
    if device_name is not None and len(device_name) > 255:
        raise ValidationError("device_name exceeds max length 255")

    now = utcnow()
    device_service.touch_device(
        dealer_id=grant.dealer_id,
        device_identifier=device_identifier,
        license_id=grant.license_id,
        ip_address=ip_address,
        device_name=device_name,
        pending_count=pending,
        now=now,
    )
    return now
