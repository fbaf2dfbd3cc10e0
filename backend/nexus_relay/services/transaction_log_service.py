# Overview: Service-layer operations for the delta transaction log; append and cursor queries.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import SyncSequence, SyncTransaction
from ..validation import ConflictError
from .concurrency import run_with_retry
"""
Transaction Log Invariants (authoritative)

- Append-only. Rows are never updated or deleted here.
- SyncTransaction.id is the idempotency key, enforced by the primary key.
  A duplicate append is a successful no-op, not an error.
- synced_at comes from the per-dealer SyncSequence row, bumped inside the
  inserting DB transaction. Commit order == sequence order.
- Queries are always scoped by dealer_id.
- Completeness is judged on synced_at; transaction_time only orders a page.
"""


class AppendOutcome(str, Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


@dataclass
class LogPage:
    records: list[SyncTransaction] = field(default_factory=list)
    next_cursor: int = 0
    has_more: bool = False


def _existing_owner(transaction_id: str) -> str | None:
    """dealer_id owning this transaction id, or None if unseen."""
    return (
        db.session.query(SyncTransaction.dealer_id)
        .filter(SyncTransaction.id == transaction_id)
        .scalar()
    )


def _outcome_for_existing(owner: str, dealer_id: str, transaction_id: str) -> AppendOutcome:
    if owner != dealer_id:
        # Ids are global; another dealer's row must neither leak nor be overwritten
        current_app.logger.warning(
            "Transaction id %s pushed by dealer %s is owned by another dealer", transaction_id, dealer_id
        )
        raise ConflictError("Transaction id rejected")
    return AppendOutcome.ALREADY_EXISTS


def allocate_synced_at(dealer_id: str) -> int:
    """
    Reserve the next synced_at value for a dealer inside the current transaction.

    Uses a row-level write on sync_sequences(dealer_id) so concurrent appenders
    for the same dealer serialize until commit. Does NOT commit.
    """
    stmt = (
        update(SyncSequence)
        .where(SyncSequence.dealer_id == dealer_id)
        .values(last_value=SyncSequence.last_value + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = SyncSequence(dealer_id=dealer_id, last_value=1)
        db.session.add(seq)
        try:
            db.session.flush()
            return 1
        except IntegrityError:
            # Another writer created the row first; take the normal path
            db.session.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    db.session.flush()
    return (
        db.session.query(SyncSequence.last_value)
        .filter_by(dealer_id=dealer_id)
        .scalar()
    )


def append_transaction(*, dealer_id: str, device_identifier: str, fields: dict) -> AppendOutcome:
    """
    Append one transaction and commit it on its own.

    Returns INSERTED for a new row and ALREADY_EXISTS when this dealer already
    holds the id. Two concurrent appends of the same id both succeed; the
    primary key lets exactly one of them insert.

    Raises ConflictError when the id belongs to a different dealer.
    """
    transaction_id = fields["id"]

    def _op() -> AppendOutcome:
        owner = _existing_owner(transaction_id)
        if owner is not None:
            return _outcome_for_existing(owner, dealer_id, transaction_id)

        synced_at = allocate_synced_at(dealer_id)
        txn = SyncTransaction(
            dealer_id=dealer_id,
            device_identifier=device_identifier,
            synced_at=synced_at,
            **fields,
        )
        db.session.add(txn)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            owner = _existing_owner(transaction_id)
            if owner is None:
                raise
            return _outcome_for_existing(owner, dealer_id, transaction_id)
        return AppendOutcome.INSERTED

    return run_with_retry(_op)


def query_after(
    *,
    dealer_id: str,
    excluding_device: str,
    cursor: int,
    limit: int,
) -> LogPage:
    """
    Next page of other devices' records with synced_at > cursor.

    The page is the first `limit` records in synced_at order, so the returned
    next_cursor (max synced_at in the page) never jumps over an unreturned
    record. Within the page records are re-ordered by transaction_time, ties
    broken by synced_at, for device-side replay.
    """
    rows = (
        db.session.query(SyncTransaction)
        .filter(
            SyncTransaction.dealer_id == dealer_id,
            SyncTransaction.device_identifier != excluding_device,
            SyncTransaction.synced_at > cursor,
        )
        .order_by(SyncTransaction.synced_at.asc())
        .limit(limit + 1)
        .all()
    )

    has_more = len(rows) > limit
    rows = rows[:limit]

    next_cursor = max((r.synced_at for r in rows), default=cursor)
    rows.sort(key=lambda r: (r.transaction_time, r.synced_at))

    return LogPage(records=rows, next_cursor=next_cursor, has_more=has_more)


def get_transaction(dealer_id: str, transaction_id: str) -> SyncTransaction | None:
    """Dealer-scoped lookup; another dealer's id reads as missing."""
    return (
        db.session.query(SyncTransaction)
        .filter_by(dealer_id=dealer_id, id=transaction_id)
        .first()
    )


def count_transactions(dealer_id: str) -> int:
    return db.session.query(SyncTransaction).filter_by(dealer_id=dealer_id).count()
