# Overview: Request decorators for license-gated sync routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import license_service
from .services.concurrency import StorageUnavailable, run_with_retry
from .services.license_service import AuthorizationDenied


def get_client_ip() -> str | None:
    """Origin IP: first X-Forwarded-For hop when trusted, else the socket peer."""
    if current_app.config.get("TRUST_FORWARDED_FOR", True):
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop[:45]
    return request.remote_addr


def _credentials() -> tuple[str | None, list[str]]:
    """License key plus every dealer id the caller asserted (body and header)."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}
    license_key = body.get("license_key") or request.headers.get("X-License-Key")
    asserted = [
        str(value).strip()
        for value in (body.get("dealer_id"), body.get("tenant_id"), request.headers.get("X-Dealer-Id"))
        if value not in (None, "")
    ]
    return license_key, asserted


def require_license(f):
    """
    Require a valid (license_key, dealer_id) pair and establish tenant context.

    Credentials are read from the JSON body first, then the X-License-Key /
    X-Dealer-Id headers.

    Sets the following Flask g attributes:
    - g.grant: the LicenseGrant for this request
    - g.dealer_id: the AUTHORIZED dealer id. Routes must scope every
      query with this, never with a dealer id read from the body.

    SECURITY: Returns 401 when credentials are missing and 403 when they are
    invalid or when body and header name different dealers. A license
    lookup that keeps failing at the storage layer returns a retryable 503.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        license_key, asserted = _credentials()

        if len(set(asserted)) > 1:
            current_app.logger.warning(
                "Dealer mismatch on %s from %s: %s",
                request.path, get_client_ip(), ", ".join(sorted(set(asserted))),
            )
            return jsonify({"success": False, "message": "Unauthorized: dealer mismatch"}), 403

        try:
            grant = run_with_retry(
                lambda: license_service.authorize(license_key, asserted[0] if asserted else None)
            )
        except AuthorizationDenied as e:
            current_app.logger.warning(
                "License denied on %s from %s: %s", request.path, get_client_ip(), e
            )
            return jsonify({"success": False, "message": str(e)}), e.status_code
        except StorageUnavailable:
            return jsonify({
                "success": False,
                "retryable": True,
                "message": "Storage temporarily unavailable, retry later",
            }), 503

        g.grant = grant
        g.dealer_id = grant.dealer_id

        return f(*args, **kwargs)

    return decorated_function
