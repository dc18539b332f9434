from passlib.context import CryptContext
from datetime import datetime
from typing import Optional
import re
import secrets

from jose import jwt

from ..config.settings import settings

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
STRICT_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against its hash"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)


def create_access_token(data: dict) -> str:
    """Create a signed session token"""
    to_encode = data.copy()
    expire = datetime.utcnow() + settings.ACCESS_TOKEN_EXPIRE_DELTA
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def generate_invitation_token() -> str:
    """Unguessable, URL-safe invitation token"""
    return secrets.token_urlsafe(32)


def org_slug(name: Optional[str]) -> str:
    """URL-safe organization slug: 'Nerds Labs' -> 'nerds-labs'"""
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or settings.DEFAULT_ORG_SLUG


def is_hex_color(value: str) -> bool:
    return bool(HEX_COLOR_RE.match(value or ""))


def is_strict_email(value: str) -> bool:
    return bool(STRICT_EMAIL_RE.match(value or ""))
