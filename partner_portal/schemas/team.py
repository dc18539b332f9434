from pydantic import Field
from typing import Optional
from datetime import datetime

from .license import CamelModel


class TeamCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    domain: Optional[str] = None
    purchased_license_count: int = Field(default=0, ge=0)
    owner_id: Optional[str] = None
    partner_id: Optional[str] = None


class LicenseCountUpdate(CamelModel):
    purchased_license_count: int = Field(ge=0)


class TeamResponse(CamelModel):
    id: str
    name: str
    domain: Optional[str] = None
    purchased_license_count: int
    owner_id: Optional[str] = None
    partner_id: Optional[str] = None


class InvitationCreate(CamelModel):
    email: str
    role: str = "member"


class InvitationAccept(CamelModel):
    token: str


class InvitationResponse(CamelModel):
    id: str
    email: str
    role: str
    status: str
    expires_at: datetime
    team_id: str


class ActivityEntry(CamelModel):
    id: str
    activity_type: str
    description: Optional[str] = None
    admin_id: Optional[str] = None
    details: Optional[dict] = None
    created_at: Optional[datetime] = None
