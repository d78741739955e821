import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PAYMENT_PROVIDER", "stub")

from datetime import date, time, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ntt_booking.config import get_settings
from ntt_booking.db import models
from ntt_booking.db.session import Base
from ntt_booking.services.payments.bayarcash import map_status_code
from ntt_booking.services.payments.gateway import BasePaymentGateway, PaymentIntent


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    yield factory
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def business(db_session):
    business = models.Business(
        name="Nelayan Tour Trips",
        slug="ntt",
        is_published=True,
        auto_cancel_enabled=True,
        auto_cancel_timeout=30,
    )
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture()
def make_slot(db_session, business):
    def factory(**overrides):
        values = {
            "business_id": business.id,
            "date": date.today() + timedelta(days=3),
            "start_time": time(9, 0),
            "end_time": time(11, 0),
            "capacity": 10,
            "booked_count": 0,
            "is_blocked": False,
        }
        values.update(overrides)
        slot = models.AvailabilitySlot(**values)
        db_session.add(slot)
        db_session.commit()
        return slot

    return factory


@pytest.fixture()
def booking_payload(business):
    def factory(slot, **overrides):
        payload = {
            "business_id": business.id,
            "availability_id": slot.id,
            "customer_name": "Aisyah Rahman",
            "customer_email": "aisyah@example.com",
            "customer_phone": "+60123456789",
            "pax": 2,
            "subtotal": "160.00",
            "addons_total": "0",
            "total_amount": "160.00",
        }
        payload.update(overrides)
        return payload

    return factory


class FakeGateway(BasePaymentGateway):
    name = "bayarcash"

    def __init__(self, settings=None):
        super().__init__(settings or get_settings())
        self.intents = []
        self.queries = []
        self.query_result = None
        self.query_error = None
        self.create_error = None

    def create_payment_intent(self, **kwargs):
        if self.create_error is not None:
            raise self.create_error
        self.intents.append(kwargs)
        return PaymentIntent(
            checkout_url=f"https://pay.example.test/checkout/{kwargs['order_number']}",
            intent_id="pi_test123",
        )

    def query_status(self, intent_id):
        self.queries.append(intent_id)
        if self.query_error is not None:
            raise self.query_error
        return self.query_result

    def verify_callback(self, data):
        return data.get("checksum") == "valid"

    def parse_status(self, raw):
        return map_status_code(raw)


@pytest.fixture()
def fake_gateway():
    return FakeGateway()

