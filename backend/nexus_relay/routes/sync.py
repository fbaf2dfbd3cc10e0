# Overview: Flask API routes for delta sync; parses input and returns JSON responses.

"""
Delta Sync API

Endpoints (all license-gated, all scoped to g.dealer_id):
- POST /transactions/push   device -> cloud
- POST /transactions/pull   cloud -> device
- POST /devices/heartbeat   presence only
- GET|POST /devices         dealer's devices with derived status
- GET|POST /status          push/pull bookkeeping for one device

Cursor semantics:
- `since` is the largest synced_at the device has applied (0 or absent = all).
- Responses carry next_cursor = max synced_at in the page; resend it as
  `since` while has_more is true.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_license, get_client_ip
from ..services import sync_service, device_service
from ..services.concurrency import StorageUnavailable, run_with_retry
from ..validation import ValidationError
from nexus_relay.time_utils import to_utc_z


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _unavailable():
    return jsonify({
        "success": False,
        "retryable": True,
        "message": "Storage temporarily unavailable, retry later",
    }), 503


@sync_bp.post("/transactions/push")
@require_license
def push_transactions_route():
    """
    Request body:
    {
        "dealer_id": "...", "license_key": "...",
        "device_identifier": "TILL-1",
        "transactions": [{"id": "t1", "action_type": "SALE", "item_sku": "A1",
                          "quantity_change": -1, "metadata": {...},
                          "transaction_time": "2026-01-01T10:00:00Z"}]
    }
    """
    data = _body()
    try:
        result = sync_service.push_transactions(
            grant=g.grant,
            device_identifier=data.get("device_identifier"),
            transactions=data.get("transactions"),
            ip_address=get_client_ip(),
        )
    except ValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except StorageUnavailable:
        return _unavailable()
    except Exception:
        current_app.logger.exception("Sync push failed")
        return jsonify({"success": False, "message": "Sync push failed"}), 500

    return jsonify({
        "success": True,
        "inserted": result.inserted,
        "skipped": result.skipped,
        "rejected": result.rejected,
        "errors": result.errors,
        "timestamp": to_utc_z(result.timestamp),
    }), 200


@sync_bp.post("/transactions/pull")
@require_license
def pull_transactions_route():
    data = _body()
    try:
        result = sync_service.pull_transactions(
            grant=g.grant,
            device_identifier=data.get("device_identifier"),
            since=data.get("since"),
            ip_address=get_client_ip(),
        )
    except ValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except StorageUnavailable:
        return _unavailable()
    except Exception:
        current_app.logger.exception("Sync pull failed")
        return jsonify({"success": False, "message": "Sync pull failed"}), 500

    return jsonify({
        "success": True,
        "transactions": result.transactions,
        "count": result.count,
        "next_cursor": result.next_cursor,
        "has_more": result.has_more,
        "timestamp": to_utc_z(result.timestamp),
    }), 200


@sync_bp.post("/devices/heartbeat")
@require_license
def heartbeat_route():
    data = _body()
    try:
        timestamp = sync_service.heartbeat(
            grant=g.grant,
            device_identifier=data.get("device_identifier"),
            device_name=data.get("device_name"),
            pending_count=data.get("pending_count"),
            ip_address=get_client_ip(),
        )
    except ValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except StorageUnavailable:
        return _unavailable()
    except Exception:
        current_app.logger.exception("Heartbeat failed")
        return jsonify({"success": False, "message": "Heartbeat failed"}), 500

    return jsonify({"success": True, "timestamp": to_utc_z(timestamp)}), 200


@sync_bp.route("/devices", methods=["GET", "POST"])
@require_license
def list_devices_route():
    try:
        devices = run_with_retry(lambda: device_service.list_devices(g.dealer_id))
    except StorageUnavailable:
        return _unavailable()
    except Exception:
        current_app.logger.exception("Failed to list devices")
        return jsonify({"success": False, "message": "Failed to get devices"}), 500

    return jsonify({"success": True, "devices": devices, "count": len(devices)}), 200


@sync_bp.route("/status", methods=["GET", "POST"])
@require_license
def sync_status_route():
    device_identifier = _body().get("device_identifier") or request.args.get("device_identifier")
    try:
        device_identifier = sync_service.require_device_identifier(device_identifier)
        state, device = run_with_retry(lambda: (
            device_service.get_sync_state(g.dealer_id, device_identifier),
            device_service.get_device(g.dealer_id, device_identifier),
        ))
    except ValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except StorageUnavailable:
        return _unavailable()
    except Exception:
        current_app.logger.exception("Failed to load sync status")
        return jsonify({"success": False, "message": "Status check failed"}), 500

    return jsonify({
        "success": True,
        "device_identifier": device_identifier,
        "last_sent_at": to_utc_z(state.last_sent_at) if state else None,
        "last_received_at": to_utc_z(state.last_received_at) if state else None,
        "device": device_service.describe_device(device) if device else None,
    }), 200
