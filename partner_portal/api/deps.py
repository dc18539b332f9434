from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jose import JWTError, jwt, ExpiredSignatureError
import logging

from ..database import get_db
from ..models import Admin
from ..config.settings import settings
from ..services.activation import ActivationStatusClient, build_activation_client
from ..services.allocation import LicenseAllocator
from ..services.email import EmailSender, build_email_sender
from ..services.identity import CallerContext, resolve_caller
from ..services.notifications import NotificationDispatcher
from ..utils.exceptions import AuthenticationFailed, PermissionDenied

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False)

_email_sender = None
_activation_client = None


def get_email_sender() -> EmailSender:
    global _email_sender
    if _email_sender is None:
        _email_sender = build_email_sender()
    return _email_sender


def get_activation_client() -> ActivationStatusClient:
    global _activation_client
    if _activation_client is None:
        _activation_client = build_activation_client()
    return _activation_client


async def get_current_admin(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme)
) -> Admin:
    if not token:
        raise AuthenticationFailed()
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_signature": True}
        )
    except ExpiredSignatureError:
        raise AuthenticationFailed("Session has expired. Please login again.")
    except JWTError as e:
        logger.warning(f"Rejected session token: {e}")
        raise AuthenticationFailed()

    admin_id = payload.get("sub")
    if admin_id is None:
        raise AuthenticationFailed()

    admin = db.query(Admin).filter(Admin.id == admin_id).first()
    if admin is None:
        raise AuthenticationFailed()
    return admin


async def get_caller(
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin)
) -> CallerContext:
    return resolve_caller(db, admin)


async def get_partner_caller(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    """Callers allowed on the partner dashboard; pending partner admins are not"""
    if caller.admin.is_pending_partner:
        raise PermissionDenied("Your partner access is pending approval.")
    return caller


async def require_moil_admin(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    if not caller.admin.is_moil_admin:
        raise PermissionDenied("Access denied. Moil admin access required.")
    return caller


def get_allocator(
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
    activation_client: ActivationStatusClient = Depends(get_activation_client)
) -> LicenseAllocator:
    return LicenseAllocator(db, email_sender, activation_client)


def get_dispatcher(
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender)
) -> NotificationDispatcher:
    return NotificationDispatcher(db, email_sender)
