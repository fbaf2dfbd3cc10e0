from __future__ import annotations

from ..extensions import db
from nexus_relay.time_utils import to_utc_z


class RemoteActivityLog(db.Model):
    """
    Dealer-scoped activity trail written by the relay (SYNC_PUSH, SYNC_PULL, ...).

    IMMUTABLE: rows are only appended. Retention cleanup is an operator task.
    """
    __tablename__ = "remote_activity_log"
    __table_args__ = (
        db.Index("ix_remote_activity_dealer_created", "dealer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dealer_id = db.Column(db.String(36), nullable=False, index=True)
    action_type = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dealer_id": self.dealer_id,
            "action_type": self.action_type,
            "description": self.description,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }
