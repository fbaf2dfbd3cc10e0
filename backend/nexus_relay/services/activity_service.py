# Overview: Service-layer operations for the dealer activity trail (fire-and-forget).

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import RemoteActivityLog
from nexus_relay.time_utils import utcnow


def log_activity(
    dealer_id: str,
    event_type: str,
    description: str | None = None,
    ip_address: str | None = None,
) -> bool:
    """
    Append one activity row for a dealer.

    Never raises: a failed write is rolled back and logged, and the caller's
    push/pull carries on. Returns True when the row was committed.
    """
    try:
        db.session.add(RemoteActivityLog(
            dealer_id=dealer_id,
            action_type=event_type,
            description=description,
            ip_address=(ip_address or None) and ip_address[:45],
            created_at=utcnow(),
        ))
        db.session.commit()
        return True
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Activity log write failed (dealer=%s, event=%s)", dealer_id, event_type
        )
        return False


def recent_activity(dealer_id: str, limit: int = 50) -> list[RemoteActivityLog]:
    return (
        db.session.query(RemoteActivityLog)
        .filter_by(dealer_id=dealer_id)
        .order_by(RemoteActivityLog.created_at.desc(), RemoteActivityLog.id.desc())
        .limit(limit)
        .all()
    )


def cleanup_activity(retention_days: int) -> int:
    """Delete activity rows older than the retention window. Returns rows deleted."""
    if retention_days < 1:
        raise ValueError("retention_days must be >= 1")
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = (
        db.session.query(RemoteActivityLog)
        .filter(RemoteActivityLog.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
