from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime, timezone
import logging
import math

from ...config.settings import settings
from ...database import get_db
from ...models import Admin, License, Partner
from ...models.license import EMAIL_FINAL_STATUSES, EMAIL_SENT
from ...models.partner import PARTNER_ACTIVE
from ...schemas.license import (
    AddLicenseRequest,
    AddLicenseResponse,
    AddMultipleLicensesRequest,
    AllocationResponse,
    LicenseIdRequest,
    LicenseListResponse,
    LicenseSummary,
    UpdateLicenseEmailRequest,
)
from ...services import activity
from ...services.allocation import LicenseAllocator
from ...services.email import EmailSender
from ...services.identity import CallerContext
from ...services.normalizer import is_candidate_email, normalize_emails, parse_csv, parse_list
from ...services.notifications import NotificationDispatcher
from ...utils.exceptions import (
    DuplicateGlobalLicense,
    EmailDeliveryFailed,
    NotFound,
    ValidationFailed,
)
from ...utils.security import org_slug
from ..deps import get_allocator, get_dispatcher, get_email_sender, get_partner_caller

logger = logging.getLogger(__name__)

router = APIRouter()


def _scoped_license(db: Session, caller: CallerContext, license_id: str) -> Optional[License]:
    return db.query(License).filter(License.id == license_id, caller.scope_filter()).first()


@router.post("/add", status_code=status.HTTP_201_CREATED, response_model=AddLicenseResponse)
async def add_license(
    body: AddLicenseRequest,
    caller: CallerContext = Depends(get_partner_caller),
    allocator: LicenseAllocator = Depends(get_allocator)
):
    """Allocate one license and email its activation link"""
    email = (body.email or "").strip().lower()
    if not is_candidate_email(email):
        raise ValidationFailed("Valid email address is required")

    result = await allocator.allocate(
        caller, normalize_emails([email]), activity_description=f"Added license for {email}"
    )
    if not result.licenses:
        raise ValidationFailed("A license for this email already exists")

    license = result.licenses[0]
    email_sent = license.email_status == EMAIL_SENT
    if license.is_activated:
        message = "License added. The account is already activated, no activation email was needed"
    elif email_sent:
        message = "License added and activation email sent successfully"
    else:
        message = "License added but failed to send activation email"

    return AddLicenseResponse(
        message=message,
        email_sent=email_sent,
        license=LicenseSummary.model_validate(license),
    )


@router.post("/add-multiple", response_model=AllocationResponse)
async def add_multiple_licenses(
    body: AddMultipleLicensesRequest,
    caller: CallerContext = Depends(get_partner_caller),
    allocator: LicenseAllocator = Depends(get_allocator)
):
    """Allocate licenses for a list of emails, reporting per-email outcomes"""
    if not body.emails:
        raise ValidationFailed("Valid email addresses are required")

    result = await allocator.allocate(caller, parse_list(body.emails))
    return result.to_dict()


@router.post("/import", response_model=AllocationResponse)
async def import_licenses(
    file: Optional[UploadFile] = File(None),
    caller: CallerContext = Depends(get_partner_caller),
    allocator: LicenseAllocator = Depends(get_allocator)
):
    """CSV import: header row, then one email in the first column of each row"""
    if file is None:
        raise ValidationFailed("No file provided")

    text = (await file.read()).decode("utf-8-sig", errors="replace")
    batch = parse_csv(text)
    if not batch.received:
        raise ValidationFailed("The CSV file has no data rows")

    logger.info(f"CSV import '{file.filename}' by {caller.admin.email}: {batch.received} rows")
    result = await allocator.allocate(caller, batch)
    return result.to_dict()


@router.post("/resend")
async def resend_activation(
    body: LicenseIdRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_partner_caller),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    license = _scoped_license(db, caller, body.license_id)
    if license is None:
        raise NotFound("License not found or you do not have permission to resend")
    if license.is_activated:
        raise ValidationFailed("License is already activated")

    result = await dispatcher.resend_activation_email(license, caller)
    if not result.success or not result.message_id:
        raise EmailDeliveryFailed()

    activity.log_team_activity(
        db, caller.team_id, activity.LICENSE_RESEND,
        f"Resent activation email to {license.email}",
        admin_id=caller.admin_id,
        details={"license_id": license.id, "email": license.email},
    )
    return {"message": "Activation email resent successfully"}


@router.get("/list", response_model=LicenseListResponse)
async def list_licenses(
    page: int = Query(1),
    limit: int = Query(settings.LICENSE_PAGE_SIZE),
    search: str = Query(""),
    status_filter: str = Query("", alias="status"),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_partner_caller)
):
    """Paginated licenses of the caller's scope plus seat statistics"""
    page = max(1, page)
    limit = min(max(1, limit), settings.LICENSE_PAGE_MAX)
    offset = (page - 1) * limit

    query = db.query(License).filter(caller.scope_filter())
    search = search.strip()
    if search:
        # autoescape keeps % and _ in the search text literal
        query = query.filter(or_(
            License.email.icontains(search, autoescape=True),
            License.business_name.icontains(search, autoescape=True),
        ))
    if status_filter == "activated":
        query = query.filter(License.is_activated.is_(True))
    elif status_filter == "pending":
        query = query.filter(License.is_activated.is_(False))

    total_count = query.count()
    licenses = (
        query.order_by(License.created_at.desc(), License.id)
        .offset(offset)
        .limit(limit)
        .all()
    )

    # Who added each license, for team transparency
    admin_ids = {l.performed_by or l.admin_id for l in licenses if (l.performed_by or l.admin_id)}
    admins = {}
    if admin_ids:
        admins = {a.id: a for a in db.query(Admin).filter(Admin.id.in_(admin_ids)).all()}

    rows = []
    for license in licenses:
        added_by = admins.get(license.performed_by or license.admin_id)
        row = {
            "id": license.id,
            "email": license.email,
            "is_activated": license.is_activated,
            "activated_at": license.activated_at,
            "created_at": license.created_at,
            "business_name": license.business_name,
            "business_type": license.business_type,
            "message_id": license.message_id,
            "email_status": license.email_status,
            "added_by": {
                "id": added_by.id,
                "name": added_by.full_name,
                "email": added_by.email,
            } if added_by else None,
        }
        rows.append(row)

    # Statistics ignore the search and status filters
    assigned = db.query(func.count(License.id)).filter(caller.scope_filter()).scalar() or 0
    activated = (
        db.query(func.count(License.id))
        .filter(caller.scope_filter(), License.is_activated.is_(True))
        .scalar() or 0
    )
    purchased = (caller.team.purchased_license_count or 0) if caller.team else 0
    total_pages = math.ceil(total_count / limit) if total_count else 0

    return {
        "licenses": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total_count": total_count,
            "total_pages": total_pages,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
        },
        "statistics": {
            "purchased": purchased,
            "assigned": assigned,
            "activated": activated,
            "pending": assigned - activated,
            "available": purchased - assigned,
            "total": assigned,
        },
    }


@router.delete("/delete")
async def delete_license(
    body: LicenseIdRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_partner_caller)
):
    license = _scoped_license(db, caller, body.license_id)
    if license is None:
        raise NotFound("License not found or you do not have permission to delete it")

    email, license_id = license.email, license.id
    db.delete(license)
    db.commit()
    logger.info(f"License {license_id} ({email}) deleted by {caller.admin.email}")

    activity.log_team_activity(
        db, caller.team_id, activity.LICENSE_DELETED, f"Deleted license for {email}",
        admin_id=caller.admin_id, details={"license_id": license_id, "email": email},
    )
    return {"success": True, "message": "License deleted successfully"}


@router.patch("/update-email")
async def update_license_email(
    body: UpdateLicenseEmailRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_partner_caller),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Correct the address of a not-yet-activated license and re-send its activation email"""
    new_email = (body.new_email or "").strip().lower()
    if not is_candidate_email(new_email):
        raise ValidationFailed("Valid email address is required")

    license = _scoped_license(db, caller, body.license_id)
    if license is None:
        raise NotFound("License not found or you do not have permission to update it")
    if license.is_activated:
        raise ValidationFailed("Cannot change the email of an activated license")
    if license.email == new_email:
        raise ValidationFailed("The new email is the same as the current one")

    holder = db.query(License).filter(License.email == new_email, License.id != license.id).first()
    if holder is not None:
        in_scope = db.query(License.id).filter(License.id == holder.id, caller.scope_filter()).first()
        if in_scope:
            raise ValidationFailed("A license for this email already exists")
        raise DuplicateGlobalLicense([new_email], settings.DUPLICATE_CONTACT_EMAIL)

    old_email = license.email
    license.email = new_email
    license.message_id = None
    license.email_status = None
    db.commit()

    result = await dispatcher.resend_activation_email(license, caller)
    activity.log_team_activity(
        db, caller.team_id, activity.LICENSE_EMAIL_UPDATED,
        f"Changed license email from {old_email} to {new_email}",
        admin_id=caller.admin_id, details={"license_id": license.id},
    )
    return {
        "message": "Email updated successfully",
        "emailSent": result.success,
        "license": LicenseSummary.model_validate(license).model_dump(by_alias=True, mode="json"),
    }


@router.post("/email-status")
async def sync_email_statuses(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_partner_caller),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """
    Pull the latest delivery event for sent activation emails in scope.

    At most EMAIL_STATUS_SYNC_LIMIT rows are polled per call, least recently
    checked first, so repeated calls work through a large backlog.
    """
    query = db.query(License).filter(
        caller.scope_filter(),
        License.message_id.isnot(None),
        or_(License.email_status.is_(None), License.email_status.notin_(EMAIL_FINAL_STATUSES)),
    )
    eligible = query.count()
    licenses = (
        query.order_by(
            License.email_status_checked_at.isnot(None),
            License.email_status_checked_at,
            License.created_at,
            License.id,
        )
        .limit(settings.EMAIL_STATUS_SYNC_LIMIT)
        .all()
    )

    synced = 0
    checked_at = datetime.now(timezone.utc)
    for license in licenses:
        latest = await email_sender.get_delivery_status(license.message_id)
        license.email_status_checked_at = checked_at
        if latest != "unknown" and latest != license.email_status:
            license.email_status = latest
            synced += 1
    db.commit()
    return {
        "success": True,
        "synced": synced,
        "checked": len(licenses),
        "remaining": eligible - len(licenses),
    }


@router.get("/verify")
async def verify_license(
    license_id: Optional[str] = Query(None, alias="licenseId"),
    slug: Optional[str] = Query(None, alias="orgSlug"),
    db: Session = Depends(get_db)
):
    """Public check used by the registration flow: does the license and organization exist"""
    if not license_id or not slug:
        raise ValidationFailed(
            "License ID and Organization Slug are required", verified=False, partnerVerified=False
        )

    wanted = org_slug(slug)
    partner = next(
        (p for p in db.query(Partner).filter(Partner.status == PARTNER_ACTIVE).all() if org_slug(p.name) == wanted),
        None,
    )
    if partner is None:
        raise NotFound("Organization not found", verified=False, partnerVerified=False)

    license = db.query(License.id).filter(License.id == license_id).first()
    return {"success": True, "verified": license is not None, "partnerVerified": True}
