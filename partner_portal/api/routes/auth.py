from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from datetime import datetime
import logging

from ...database import get_db
from ...models import Admin
from ...schemas.auth import TokenSchema
from ...services.identity import CallerContext
from ...utils.exceptions import AuthenticationFailed
from ...utils.security import verify_password, create_access_token
from ..deps import get_caller

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=TokenSchema)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    email = form_data.username.strip().lower()
    logger.info(f"Login attempt for admin: {email}")

    admin = db.query(Admin).filter(Admin.email == email).first()
    if not admin or not verify_password(form_data.password, admin.hashed_password):
        logger.warning(f"Failed login for: {email}")
        raise AuthenticationFailed("Incorrect email or password")

    admin.last_login = datetime.utcnow()
    db.commit()

    access_token = create_access_token(data={"sub": str(admin.id)})
    logger.info(f"Login successful for admin: {email}")
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me")
async def me(caller: CallerContext = Depends(get_caller)):
    """The caller's admin record, role, team and partner"""
    admin = caller.admin
    return {
        "id": admin.id,
        "email": admin.email,
        "firstName": admin.first_name,
        "lastName": admin.last_name,
        "globalRole": admin.global_role,
        "partnerId": admin.partner_id,
        "pending": admin.is_pending_partner,
        "team": {
            "id": caller.team.id,
            "name": caller.team.name,
            "role": caller.team_role,
        } if caller.team else None,
        "partner": {
            "id": caller.partner.id,
            "name": caller.partner.name,
            "status": caller.partner.status,
        } if caller.partner else None,
    }
