from datetime import date, time, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import models
from ..db.session import SessionLocal
from .admin import ensure_admin_exists


def seed(session: Session) -> None:
    settings = get_settings()
    ensure_admin_exists(session, settings.default_admin_login, settings.default_admin_password)
    if session.query(models.Business).count() == 0:
        business = models.Business(
            name="Nelayan Tour Trips",
            slug="ntt",
            description="Island hopping and mangrove boat tours",
            is_published=True,
        )
        session.add(business)
        session.flush()
        service = models.Service(
            business_id=business.id,
            name="Mangrove boat tour",
            price=Decimal("80.00"),
            duration_minutes=120,
            max_capacity=10,
        )
        session.add(service)
        session.flush()
        tomorrow = date.today() + timedelta(days=1)
        for start in (time(9, 0), time(14, 0)):
            session.add(
                models.AvailabilitySlot(
                    business_id=business.id,
                    service_id=service.id,
                    date=tomorrow,
                    start_time=start,
                    end_time=time(start.hour + 2, 0),
                    capacity=10,
                    booked_count=0,
                )
            )
    session.commit()


if __name__ == "__main__":
    with SessionLocal() as session:
        seed(session)
        print("Seed data created")
