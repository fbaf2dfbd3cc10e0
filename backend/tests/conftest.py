"""
Pytest fixtures for the sync relay backend tests.

Provides test database setup, two isolated dealers with licenses, and a test client.
"""

from datetime import timedelta

import pytest
from nexus_relay import create_app
from nexus_relay.extensions import db
from nexus_relay.models import Dealer, License
from nexus_relay.services.license_service import LicenseGrant
from nexus_relay.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRUST_FORWARDED_FOR': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def dealer_a(db_session):
    """Dealer A (first tenant)."""
    dealer = Dealer(name="Dealer A - Acme Market", is_active=True)
    db_session.add(dealer)
    db_session.commit()
    return dealer


@pytest.fixture(scope='function')
def dealer_b(db_session):
    """Dealer B (second tenant)."""
    dealer = Dealer(name="Dealer B - Beta Hardware", is_active=True)
    db_session.add(dealer)
    db_session.commit()
    return dealer


@pytest.fixture(scope='function')
def license_a(db_session, dealer_a):
    lic = License(license_key="AAAA-1111-AAAA-1111", dealer_id=dealer_a.id, is_active=True)
    db_session.add(lic)
    db_session.commit()
    return lic


@pytest.fixture(scope='function')
def license_b(db_session, dealer_b):
    lic = License(
        license_key="BBBB-2222-BBBB-2222",
        dealer_id=dealer_b.id,
        is_active=True,
        expires_at=utcnow() + timedelta(days=365),
    )
    db_session.add(lic)
    db_session.commit()
    return lic


@pytest.fixture(scope='function')
def grant_a(license_a):
    return LicenseGrant(dealer_id=license_a.dealer_id, license_id=license_a.id)


@pytest.fixture(scope='function')
def grant_b(license_b):
    return LicenseGrant(dealer_id=license_b.dealer_id, license_id=license_b.id)


def license_body(lic: License, **extra) -> dict:
    """JSON body carrying license credentials, the way devices send them."""
    body = {'license_key': lic.license_key, 'dealer_id': lic.dealer_id}
    body.update(extra)
    return body


def license_headers(lic: License) -> dict:
    """Header form of the same credentials."""
    return {'X-License-Key': lic.license_key, 'X-Dealer-Id': lic.dealer_id}


def make_txn(txn_id: str | None, **fields) -> dict:
    """A pushed transaction with sensible defaults."""
    txn = {
        'action_type': 'SALE',
        'item_sku': 'A1',
        'item_name': 'Widget',
        'quantity_change': -1,
    }
    if txn_id is not None:
        txn['id'] = txn_id
    txn.update(fields)
    return txn
