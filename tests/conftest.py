"""Shared pytest fixtures for AgroBid tests.

The app reads its settings at import time, so the environment is prepared
before anything from `agrobid` is imported: a throwaway SQLite file database,
no background sweep and no rate limiting.
"""

import os
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

_db_dir = tempfile.mkdtemp(prefix="agrobid-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_db_dir) / 'agrobid.db'}"
os.environ["AUCTION_SWEEP_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from agrobid.db.models import ProduceBatch, Sale, User, utcnow
from agrobid.db.session import Base, SessionLocal, engine
from agrobid.main import app
from agrobid.utils.security import create_access_token


class RecordingNotifier:
    """Notification sink that keeps every published event."""

    def __init__(self):
        self.events = []

    def publish(self, sale_id, event, data):
        self.events.append((sale_id, event, data))

    def of_type(self, event):
        return [e for e in self.events if e[1] == event]


class FrozenClock:
    """Virtual clock: returns a fixed instant until advanced."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


START = datetime(2025, 3, 1, 9, 0, 0)
END = datetime(2025, 3, 1, 18, 0, 0)


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    """Mid-auction for sales built with the default window."""
    return FrozenClock(datetime(2025, 3, 1, 12, 0, 0))


@pytest.fixture
def user_factory(db):
    def make_user(role="buyer", name=None, company_name=None, contact_person=None):
        user = User(
            role=role,
            name=name or f"{role.title()} User",
            company_name=company_name,
            contact_person=contact_person,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return make_user


@pytest.fixture
def sale_factory(db, user_factory):
    def make_sale(
        minimum_price=Decimal("1000"),
        start=START,
        end=END,
        status="active",
        seller=None,
        crop_name="Wheat",
        quantity=10,
        unit="quintal"
    ):
        seller = seller or user_factory(role="farmer", name="Ramesh")
        batch = ProduceBatch(
            farmer_id=seller.id,
            crop_name=crop_name,
            quantity=quantity,
            unit=unit,
            storage_location="Varanasi",
            status="listed-for-sale",
        )
        db.add(batch)
        db.flush()

        sale = Sale(
            produce_batch_id=batch.id,
            seller_id=seller.id,
            minimum_price=Decimal(minimum_price),
            auction_start_date=start,
            auction_end_date=end,
            status=status,
        )
        db.add(sale)
        db.flush()
        batch.sale_id = sale.id
        db.commit()
        db.refresh(sale)
        return sale
    return make_sale


@pytest.fixture
def live_sale_factory(sale_factory):
    """Sales whose window is open on the real clock, for HTTP tests."""
    def make_live_sale(**kwargs):
        now = utcnow()
        kwargs.setdefault("start", now - timedelta(hours=1))
        kwargs.setdefault("end", now + timedelta(hours=1))
        return sale_factory(**kwargs)
    return make_live_sale


@pytest.fixture
def token_for():
    def make_token(user) -> str:
        return create_access_token({"sub": str(user.id)})
    return make_token


@pytest.fixture
def auth_headers(token_for):
    def make_headers(user) -> dict:
        return {"Authorization": f"Bearer {token_for(user)}"}
    return make_headers


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
