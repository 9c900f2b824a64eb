"""
Pytest fixtures for barbercore backend tests.

Provides test database setup, catalog/session factories, and test client.
"""

from decimal import Decimal

import pytest
from barbercore import create_app
from barbercore.extensions import db
from barbercore.models import Service, CommissionOverride
from barbercore.services import cash_register_service


CRON_SECRET = "test-cron-secret"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CRON_SECRET': CRON_SECRET,
        'TELEGRAM_BOT_TOKEN': None,
        'TELEGRAM_CHAT_ID': None,
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
def make_service(db_session):
    """Factory for catalog services (location 1 by default)."""
    def _make(name="Haircut", price="50.00", commission="40.00", location_id=1, is_active=True):
        service = Service(
            location_id=location_id,
            name=name,
            price=Decimal(price),
            commission_percentage=Decimal(commission),
            duration_minutes=30,
            is_active=is_active,
        )
        db_session.add(service)
        db_session.commit()
        return service
    return _make


@pytest.fixture(scope='function')
def haircut(make_service):
    return make_service()


@pytest.fixture(scope='function')
def override(db_session, haircut):
    """Professional 7 earns 55% on haircuts instead of the default 40%."""
    row = CommissionOverride(professional_id=7, service_id=haircut.id, commission_percentage=Decimal("55.00"))
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def open_session(db_session):
    """Open cash session for location 1 with 100.00 in the drawer."""
    return cash_register_service.open_session(location_id=1, opening_balance="100.00")
