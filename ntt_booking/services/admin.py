import logging
from sqlalchemy.orm import Session

from ..core import security
from ..db import models

logger = logging.getLogger(__name__)


def ensure_admin_exists(session: Session, login: str, password: str) -> None:
    owner = session.query(models.StaffUser).filter_by(login=login).first()
    if owner:
        updated = False
        if not security.verify_password(password, owner.password_hash):
            owner.password_hash = security.get_password_hash(password)
            updated = True
        if owner.role != models.StaffRole.owner:
            owner.role = models.StaffRole.owner
            updated = True
        if updated:
            session.commit()
            logger.info("Updated default owner account '%s'", login)
        else:
            logger.info("Owner account '%s' already exists", login)
        return

    owner = models.StaffUser(
        login=login,
        password_hash=security.get_password_hash(password),
        role=models.StaffRole.owner,
        business_id=None,
    )
    session.add(owner)
    session.commit()
    logger.info("Created default owner account '%s'", login)
