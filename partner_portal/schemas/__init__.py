from .auth import TokenSchema, TokenPayload
from .license import (
    AddLicenseRequest, AddMultipleLicensesRequest, LicenseIdRequest, UpdateLicenseEmailRequest,
    LicenseSummary, LicenseRow, LicenseListResponse, AddLicenseResponse, AllocationResponse
)
from .team import TeamCreate, LicenseCountUpdate, TeamResponse, InvitationCreate, InvitationAccept
from .partner import (
    PartnerCreate, AccessRequest, BrandingUpdate, PartnerResponse, BrandingResponse,
    PartnerUpdate, PartnerDetail, PartnerStats
)
