from functools import lru_cache
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session
from ..config import get_settings
from ..db.session import get_db
from ..db.models import StaffUser
from ..core.security import ALGORITHM
from ..services.payments.gateway import BasePaymentGateway, get_gateway


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_staff(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> StaffUser:
    settings = get_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise credentials_exception from exc
    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception
    user = db.get(StaffUser, int(user_id))
    if user is None:
        raise credentials_exception
    return user


def require_roles(*roles: str):
    def dependency(user: Annotated[StaffUser, Depends(get_current_staff)]) -> StaffUser:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return dependency


def resolve_business_id(user: StaffUser, requested: int | None) -> int:
    """Staff bound to a business may only act on that business."""
    if user.business_id is not None:
        if requested is not None and requested != user.business_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user.business_id
    if requested is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="business_id is required")
    return requested


@lru_cache(maxsize=1)
def get_payment_gateway() -> BasePaymentGateway:
    return get_gateway(get_settings())
