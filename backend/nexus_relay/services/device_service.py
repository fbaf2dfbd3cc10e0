# Overview: Service-layer operations for device presence and sync bookkeeping.

"""
Device Presence Tracker

WHY: Dealers need to see which tills are live, which have gone quiet and how
much unsynced work each one reports, without any device-side coordination.

DESIGN:
- One SyncDevice row per (dealer_id, device_identifier), upserted on every
  push, pull and heartbeat.
- The upsert is an explicit merge of (existing, incoming) -> new values, so
  the "keep the known name" rule does not depend on storage-specific
  COALESCE/ON DUPLICATE KEY tricks.
- Status (online / idle / offline) is never stored. It is computed from
  last_sync_at at read time, so it is always current.
- SyncState rows are informational only; pull cursors come from the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import SyncDevice, SyncState
from nexus_relay.time_utils import utcnow, minutes_between
from .concurrency import run_with_retry


STATUS_ONLINE = "online"
STATUS_IDLE = "idle"
STATUS_OFFLINE = "offline"


@dataclass(frozen=True)
class DeviceContact:
    """What one push/pull/heartbeat tells us about a device."""
    license_id: int | None
    ip_address: str | None
    seen_at: datetime
    device_name: str | None = None
    pending_count: int | None = None  # None = not reported on this call


def presence_status(
    last_sync_at: Optional[datetime],
    now: Optional[datetime] = None,
    *,
    online_minutes: Optional[int] = None,
    idle_minutes: Optional[int] = None,
) -> str:
    """
    Classify a device by time since last contact.

    < online_minutes -> online, < idle_minutes -> idle, otherwise offline.
    A device never seen is offline.
    """
    if online_minutes is None:
        online_minutes = current_app.config.get("PRESENCE_ONLINE_MINUTES", 10)
    if idle_minutes is None:
        idle_minutes = current_app.config.get("PRESENCE_IDLE_MINUTES", 60)

    elapsed = minutes_between(last_sync_at, now or utcnow())
    if elapsed is None:
        return STATUS_OFFLINE
    if elapsed < online_minutes:
        return STATUS_ONLINE
    if elapsed < idle_minutes:
        return STATUS_IDLE
    return STATUS_OFFLINE


def merge_device(existing: Optional[dict], incoming: DeviceContact) -> dict:
    """
    Merge a new contact into the stored device values.

    - last_sync_at, last_ip, license_id: always the latest contact
    - device_name: only replaced by a non-empty name
    - pending_transactions: latest reported gauge; kept when not reported
    """
    existing = existing or {}

    name = (incoming.device_name or "").strip() or None
    pending = incoming.pending_count
    if pending is None:
        pending = existing.get("pending_transactions") or 0

    return {
        "license_id": incoming.license_id if incoming.license_id is not None else existing.get("license_id"),
        "device_name": name if name else existing.get("device_name"),
        "last_sync_at": incoming.seen_at,
        "last_ip": incoming.ip_address,
        "pending_transactions": pending,
    }


def _device_values(device: SyncDevice) -> dict:
    return {
        "license_id": device.license_id,
        "device_name": device.device_name,
        "last_sync_at": device.last_sync_at,
        "last_ip": device.last_ip,
        "pending_transactions": device.pending_transactions,
    }


def touch_device(
    *,
    dealer_id: str,
    device_identifier: str,
    license_id: int | None,
    ip_address: str | None,
    device_name: str | None = None,
    pending_count: int | None = None,
    now: Optional[datetime] = None,
) -> SyncDevice:
    """
    Record contact from a device (heartbeat, or as a side effect of push/pull).

    Creates the presence row on first contact. A concurrent first contact
    from the same device loses the unique-constraint race and falls back to
    updating the row the other request created.
    """
    contact = DeviceContact(
        license_id=license_id,
        ip_address=ip_address,
        seen_at=now or utcnow(),
        device_name=device_name,
        pending_count=pending_count,
    )

    def _op() -> SyncDevice:
        for _ in range(2):
            device = (
                db.session.query(SyncDevice)
                .filter_by(dealer_id=dealer_id, device_identifier=device_identifier)
                .first()
            )
            if device is not None:
                for key, value in merge_device(_device_values(device), contact).items():
                    setattr(device, key, value)
                db.session.commit()
                return device

            device = SyncDevice(
                dealer_id=dealer_id,
                device_identifier=device_identifier,
                **merge_device(None, contact),
            )
            db.session.add(device)
            try:
                db.session.commit()
                return device
            except IntegrityError:
                db.session.rollback()
        raise RuntimeError(f"Could not upsert device {device_identifier!r}")

    return run_with_retry(_op)


def record_sync_state(
    *,
    dealer_id: str,
    device_identifier: str,
    sent_at: Optional[datetime] = None,
    received_at: Optional[datetime] = None,
) -> SyncState:
    """Upsert push/pull bookkeeping. Only the timestamps passed are changed."""
    def _op() -> SyncState:
        for _ in range(2):
            state = (
                db.session.query(SyncState)
                .filter_by(dealer_id=dealer_id, device_identifier=device_identifier)
                .first()
            )
            if state is None:
                state = SyncState(dealer_id=dealer_id, device_identifier=device_identifier)
                db.session.add(state)
            if sent_at is not None:
                state.last_sent_at = sent_at
            if received_at is not None:
                state.last_received_at = received_at
            try:
                db.session.commit()
                return state
            except IntegrityError:
                db.session.rollback()
        raise RuntimeError(f"Could not upsert sync state for {device_identifier!r}")

    return run_with_retry(_op)


def get_sync_state(dealer_id: str, device_identifier: str) -> SyncState | None:
    return (
        db.session.query(SyncState)
        .filter_by(dealer_id=dealer_id, device_identifier=device_identifier)
        .first()
    )


def get_device(dealer_id: str, device_identifier: str) -> SyncDevice | None:
    return (
        db.session.query(SyncDevice)
        .filter_by(dealer_id=dealer_id, device_identifier=device_identifier)
        .first()
    )


def describe_device(device: SyncDevice, now: Optional[datetime] = None) -> dict:
    """Device row plus the derived presence fields."""
    now = now or utcnow()
    d = device.to_dict()
    d["status"] = presence_status(device.last_sync_at, now)
    d["minutes_since_sync"] = minutes_between(device.last_sync_at, now)
    return d


def list_devices(dealer_id: str, now: Optional[datetime] = None) -> list[dict]:
    """All devices of one dealer, most recently seen first."""
    now = now or utcnow()
    devices = (
        db.session.query(SyncDevice)
        .filter_by(dealer_id=dealer_id)
        .order_by(SyncDevice.last_sync_at.desc(), SyncDevice.id.asc())
        .all()
    )
    return [describe_device(d, now) for d in devices]
