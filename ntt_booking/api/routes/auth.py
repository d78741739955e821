from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.orm import Session
from ...core import security
from ...core.auth import authenticate_staff
from ...db.session import get_db
from ...db import models
from ...config import get_settings
from .. import deps


router = APIRouter(prefix="/auth", tags=["auth"])


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


def _describe(staff: models.StaffUser) -> dict:
    return {
        "id": staff.id,
        "login": staff.login,
        "role": staff.role.value,
        "business_id": staff.business_id,
    }


@router.post("/login", response_model=TokenResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    staff = authenticate_staff(db, form_data.username, form_data.password)
    if not staff:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")
    settings = get_settings()
    token = security.create_access_token(
        {"sub": str(staff.id), "role": staff.role.value},
        timedelta(minutes=settings.jwt_expire_min),
    )
    staff.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return TokenResponse(access_token=token, user=_describe(staff))


@router.get("/me")
def me(current: models.StaffUser = Depends(deps.get_current_staff)):
    return _describe(current)
