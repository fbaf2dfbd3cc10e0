from __future__ import annotations

import uuid

from ..extensions import db
from nexus_relay.time_utils import to_utc_z


def _new_dealer_id() -> str:
    return str(uuid.uuid4())


class Dealer(db.Model):
    """
    Tenant root: every device, license and synced transaction belongs to a dealer.

    All sync queries are scoped by dealer_id. There is no cross-dealer read path.
    """
    __tablename__ = "dealers"

    id = db.Column(db.String(36), primary_key=True, default=_new_dealer_id)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Dealer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class License(db.Model):
    """
    License key issued to a dealer.

    Devices present (license_key, dealer_id) on every sync call. Key generation
    and extension happen elsewhere; the relay only reads these rows.
    """
    __tablename__ = "licenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    license_key = db.Column(db.String(64), nullable=False, unique=True, index=True)
    dealer_id = db.Column(db.String(36), db.ForeignKey("dealers.id"), nullable=False, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)  # NULL = perpetual

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    dealer = db.relationship("Dealer", backref=db.backref("licenses", lazy=True))

    def __repr__(self) -> str:
        return f"<License id={self.id} dealer_id={self.dealer_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dealer_id": self.dealer_id,
            "is_active": self.is_active,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }
