from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class AddLicenseRequest(BaseModel):
    email: str


class AddMultipleLicensesRequest(BaseModel):
    emails: List[str]


class LicenseIdRequest(CamelModel):
    license_id: str


class UpdateLicenseEmailRequest(CamelModel):
    license_id: str
    new_email: str


class LicenseSummary(CamelModel):
    id: str
    email: str
    is_activated: bool
    created_at: Optional[datetime] = None


class AddedBy(CamelModel):
    id: str
    name: str
    email: str


class LicenseRow(LicenseSummary):
    activated_at: Optional[datetime] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    message_id: Optional[str] = None
    email_status: Optional[str] = None
    added_by: Optional[AddedBy] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class LicenseStatistics(CamelModel):
    purchased: int
    assigned: int
    activated: int
    pending: int
    available: int
    total: int


class LicenseListResponse(CamelModel):
    licenses: List[LicenseRow]
    pagination: Pagination
    statistics: LicenseStatistics


class AddLicenseResponse(CamelModel):
    message: str
    email_sent: bool
    license: LicenseSummary


class AllocationResponse(CamelModel):
    message: str
    success: int
    failed: int
    emails_sent: int
    emails_failed: int
    errors: List[str] = Field(default_factory=list)
    licenses: List[LicenseSummary] = Field(default_factory=list)
