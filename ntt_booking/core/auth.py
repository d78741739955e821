from sqlalchemy.orm import Session
from ..db import models
from . import security


def authenticate_staff(db: Session, login: str, password: str) -> models.StaffUser | None:
    staff = db.query(models.StaffUser).filter_by(login=login).first()
    if not staff:
        return None
    if not security.verify_password(password, staff.password_hash):
        return None
    return staff
