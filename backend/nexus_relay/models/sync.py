from __future__ import annotations

from ..extensions import db
from nexus_relay.payload_utils import decode_metadata
from nexus_relay.time_utils import to_utc_z


class SyncSequence(db.Model):
    """
    Per-dealer counter backing SyncTransaction.synced_at.

    The counter row is bumped in the same DB transaction as the insert it
    stamps, so a second writer for the same dealer blocks on the row until the
    first commits. Commit order therefore equals sequence order, and a reader
    that has seen synced_at=N can never later see a new row with synced_at<=N.
    """
    __tablename__ = "sync_sequences"

    dealer_id = db.Column(db.String(36), db.ForeignKey("dealers.id"), primary_key=True)
    last_value = db.Column(db.BigInteger, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "dealer_id": self.dealer_id,
            "last_value": self.last_value,
            "updated_at": to_utc_z(self.updated_at),
        }


class SyncTransaction(db.Model):
    """
    Append-only delta log shared by all devices of a dealer.

    INVARIANTS:
    - id is caller supplied and globally unique; the primary key is the
      idempotency check, so a duplicate insert fails at the storage layer.
    - Rows are never updated or deleted by the relay.
    - transaction_time is device business time (untrusted, display order only).
    - synced_at is the server sequence value assigned at acceptance and is
      the only field pull cursors compare against.
    """
    __tablename__ = "sync_transactions"
    __table_args__ = (
        db.UniqueConstraint("dealer_id", "synced_at", name="uq_sync_transactions_dealer_seq"),
        db.Index("ix_sync_transactions_dealer_device", "dealer_id", "device_identifier"),
        db.Index("ix_sync_transactions_dealer_time", "dealer_id", "transaction_time"),
    )

    id = db.Column(db.String(64), primary_key=True)
    dealer_id = db.Column(db.String(36), db.ForeignKey("dealers.id"), nullable=False, index=True)
    device_identifier = db.Column(db.String(128), nullable=False)

    action_type = db.Column(db.String(32), nullable=False, index=True)  # SALE, ADJUST, RESTOCK, ...
    item_sku = db.Column(db.String(128), nullable=True)
    item_name = db.Column(db.String(255), nullable=True)
    quantity_change = db.Column(db.Numeric(14, 3, asdecimal=False), nullable=False, default=0)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)

    # "metadata" is reserved on declarative classes; column keeps the wire name
    metadata_json = db.Column("metadata", db.Text, nullable=True)

    transaction_time = db.Column(db.DateTime(timezone=True), nullable=False)
    synced_at = db.Column(db.BigInteger, nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    dealer = db.relationship("Dealer", backref=db.backref("sync_transactions", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<SyncTransaction id={self.id!r} dealer_id={self.dealer_id} synced_at={self.synced_at}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_identifier": self.device_identifier,
            "action_type": self.action_type,
            "item_sku": self.item_sku,
            "item_name": self.item_name,
            "quantity_change": self.quantity_change,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "metadata": decode_metadata(self.metadata_json),
            "transaction_time": to_utc_z(self.transaction_time),
            "synced_at": self.synced_at,
        }


class SyncDevice(db.Model):
    """
    Presence row, one per (dealer, device), upserted on every contact.

    Online/idle/offline status is NOT stored; it is derived from last_sync_at
    whenever the row is read.
    """
    __tablename__ = "sync_devices"
    __table_args__ = (
        db.UniqueConstraint("dealer_id", "device_identifier", name="uq_sync_devices_dealer_device"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dealer_id = db.Column(db.String(36), db.ForeignKey("dealers.id"), nullable=False, index=True)
    device_identifier = db.Column(db.String(128), nullable=False)
    license_id = db.Column(db.Integer, db.ForeignKey("licenses.id"), nullable=True)

    device_name = db.Column(db.String(255), nullable=True)
    last_sync_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    last_ip = db.Column(db.String(45), nullable=True)
    pending_transactions = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<SyncDevice dealer_id={self.dealer_id} device={self.device_identifier!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dealer_id": self.dealer_id,
            "device_identifier": self.device_identifier,
            "license_id": self.license_id,
            "device_name": self.device_name,
            "last_sync_at": to_utc_z(self.last_sync_at),
            "last_ip": self.last_ip,
            "pending_transactions": self.pending_transactions,
        }


class SyncState(db.Model):
    """Informational push/pull bookkeeping per (dealer, device). Never gates correctness."""
    __tablename__ = "sync_state"
    __table_args__ = (
        db.UniqueConstraint("dealer_id", "device_identifier", name="uq_sync_state_dealer_device"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dealer_id = db.Column(db.String(36), db.ForeignKey("dealers.id"), nullable=False, index=True)
    device_identifier = db.Column(db.String(128), nullable=False)

    last_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "dealer_id": self.dealer_id,
            "device_identifier": self.device_identifier,
            "last_sent_at": to_utc_z(self.last_sent_at),
            "last_received_at": to_utc_z(self.last_received_at),
        }
