from pydantic import Field
from typing import Optional
from datetime import datetime

from .license import CamelModel


class PartnerCreate(CamelModel):
    name: str = Field(min_length=2, max_length=100)
    domain: str
    program_name: Optional[str] = None
    support_email: Optional[str] = None


class AccessRequest(CamelModel):
    organization_name: str
    email: str


class BrandingUpdate(CamelModel):
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    logo_url: Optional[str] = None
    logo_initial: Optional[str] = Field(default=None, max_length=4)
    program_name: Optional[str] = None
    full_name: Optional[str] = None
    support_email: Optional[str] = None
    license_duration: Optional[str] = None


class PartnerResponse(CamelModel):
    id: str
    name: str
    domain: str
    status: str
    created_at: Optional[datetime] = None


class BrandingResponse(CamelModel):
    partner_id: Optional[str] = None
    name: str
    program_name: str
    full_name: str
    logo_url: Optional[str] = None
    logo_initial: str
    primary_color: str
    secondary_color: str
    support_email: str
    license_duration: str


class PartnerUpdate(CamelModel):
    # name for partner admins; domain and status for moil admins only
    name: Optional[str] = None
    domain: Optional[str] = None
    status: Optional[str] = None


class PartnerDetail(PartnerResponse):
    program_name: Optional[str] = None
    full_name: Optional[str] = None
    logo_url: Optional[str] = None
    logo_initial: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    support_email: Optional[str] = None
    license_duration: Optional[str] = None


class PartnerStats(CamelModel):
    total_licenses: int
    activated_licenses: int
    pending_licenses: int
    total_teams: int
    total_admins: int
    total_purchased_licenses: int
    available_licenses: int
