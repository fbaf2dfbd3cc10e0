# Overview: Service-layer authorization gate; maps a presented license to a dealer.

"""
Tenant Authorization Gate

WHY: Every sync call must be pinned to exactly one dealer before it touches
the log. The dealer id used downstream is always the one proven by the
license, never one the client merely asserts.

SECURITY INVARIANTS:
1. Missing credentials -> AuthorizationDenied (401)
2. Unknown/inactive/expired license, inactive dealer, or a dealer id that
   does not own the license -> AuthorizationDenied (403)
3. Denial happens before any write
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..extensions import db
from ..models import Dealer, License
from nexus_relay.time_utils import utcnow


class AuthorizationDenied(Exception):
    """Raised when a caller cannot be tied to an active dealer license."""

    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class LicenseGrant:
    """Authorized tenant context for one request."""
    dealer_id: str
    license_id: int


def authorize(
    license_key: str | None,
    dealer_id: str | None,
    now: Optional[datetime] = None,
) -> LicenseGrant:
    """
    Validate (license_key, dealer_id) and return the grant.

    Raises:
        AuthorizationDenied if the pair does not identify an active license.
    """
    license_key = (license_key or "").strip()
    dealer_id = (str(dealer_id) if dealer_id is not None else "").strip()

    if not license_key or not dealer_id:
        raise AuthorizationDenied("License credentials missing", status_code=401)

    lic = (
        db.session.query(License)
        .filter_by(license_key=license_key, dealer_id=dealer_id, is_active=True)
        .first()
    )
    if lic is None:
        # Same answer for unknown key and key owned by another dealer
        raise AuthorizationDenied("Unauthorized: invalid license")

    if lic.expires_at is not None:
        expires_at = lic.expires_at
        if expires_at.tzinfo is not None:
            expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
        if expires_at < (now or utcnow()):
            raise AuthorizationDenied("Unauthorized: license expired")

    dealer = db.session.query(Dealer).filter_by(id=lic.dealer_id).first()
    if dealer is None or not dealer.is_active:
        raise AuthorizationDenied("Unauthorized: dealer inactive")

    return LicenseGrant(dealer_id=lic.dealer_id, license_id=lic.id)
