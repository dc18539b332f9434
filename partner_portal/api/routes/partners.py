from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional, Tuple
import logging

from ...config.settings import settings
from ...database import get_db
from ...models import ActivityLog, Admin, License, Partner, Team
from ...models.admin import ROLE_MOIL_ADMIN, ROLE_PARTNER_ADMIN
from ...models.partner import PARTNER_ACTIVE, PARTNER_PENDING, PARTNER_STATUSES, PARTNER_SUSPENDED
from ...schemas.partner import (
    AccessRequest,
    BrandingResponse,
    BrandingUpdate,
    PartnerCreate,
    PartnerDetail,
    PartnerResponse,
    PartnerStats,
    PartnerUpdate,
)
from ...services import activity
from ...services.email import EmailSender
from ...services.identity import CallerContext
from ...services.templates import render_partner_access_request, render_partner_approved, resolve_branding
from ...utils.exceptions import Conflict, NotFound, PermissionDenied, ValidationFailed
from ...utils.security import generate_invitation_token, is_hex_color, is_strict_email, org_slug
from ..deps import get_caller, get_email_sender, require_moil_admin

logger = logging.getLogger(__name__)

router = APIRouter()

# Shorter tokens were never issued
MIN_APPROVAL_TOKEN_LENGTH = 32


def _partner_or_404(db: Session, partner_id: str) -> Partner:
    partner = db.query(Partner).filter(Partner.id == partner_id).first()
    if partner is None:
        raise NotFound("Partner not found")
    return partner


def _can_manage(caller: CallerContext, partner_id: str) -> bool:
    return caller.admin.is_moil_admin or caller.admin.partner_id == partner_id


def _detail(partner: Partner) -> dict:
    return PartnerDetail.model_validate(partner).model_dump(by_alias=True, mode="json")


def _valid_domain(value: str) -> str:
    domain = value.strip().lower()
    if "." not in domain or " " in domain:
        raise ValidationFailed("Invalid domain format")
    return domain


def _branding_response(partner: Optional[Partner]) -> BrandingResponse:
    branding = resolve_branding(partner)
    return BrandingResponse(
        partner_id=partner.id if partner else None,
        name=partner.name if partner else settings.DEFAULT_PROGRAM_NAME,
        program_name=branding.program_name,
        full_name=branding.full_name,
        logo_url=branding.logo_url,
        logo_initial=branding.logo_initial,
        primary_color=branding.primary_color,
        secondary_color=(partner.secondary_color if partner else None) or settings.DEFAULT_SECONDARY_COLOR,
        support_email=branding.support_email,
        license_duration=branding.license_duration,
    )


def build_approval_url(token: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}{settings.API_PREFIX}/partners/grant-access/{token}"


async def activate_partner(
    db: Session,
    partner: Partner,
    email_sender: EmailSender,
    approved_by: Optional[str] = None
) -> Tuple[int, int]:
    """
    Activate a pending partner and link every admin of its email domain.

    Approval emails are best-effort. Returns (linked admins, emails sent).
    """
    partner.status = PARTNER_ACTIVE
    partner.approval_token = None
    # autoescape keeps "_" in the domain from acting as a wildcard
    admins = (
        db.query(Admin)
        .filter(
            Admin.email.iendswith(f"@{partner.domain}", autoescape=True),
            Admin.global_role != ROLE_MOIL_ADMIN,
        )
        .all()
    )
    for admin in admins:
        admin.partner_id = partner.id
        admin.global_role = ROLE_PARTNER_ADMIN
    db.commit()

    login_url = f"{settings.APP_URL.rstrip('/')}/login"
    emails_sent = 0
    for admin in admins:
        try:
            result = await email_sender.send(render_partner_approved(admin.email, partner.name, login_url))
            emails_sent += 1 if result.success else 0
        except Exception:
            logger.exception(f"Approval email to {admin.email} failed")

    activity.log_activity(
        db, activity.PARTNER_APPROVED, f"Approved partner {partner.name}",
        admin_id=approved_by, partner_id=partner.id,
        details={"linked_admins": len(admins), "emails_sent": emails_sent},
    )
    logger.info(f"Partner {partner.name} approved; {len(admins)} admin(s) linked")
    return len(admins), emails_sent


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PartnerResponse)
async def create_partner(
    body: PartnerCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_moil_admin)
):
    name = body.name.strip()
    domain = _valid_domain(body.domain)
    if db.query(Partner.id).filter(Partner.domain == domain).first():
        raise Conflict("A partner with this domain already exists")

    partner = Partner(
        name=name,
        domain=domain,
        status=PARTNER_ACTIVE,
        program_name=(body.program_name or name).strip(),
        full_name=name,
        logo_initial=name[:1].upper(),
        support_email=body.support_email,
    )
    db.add(partner)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("A partner with this domain already exists")
    db.refresh(partner)

    logger.info(f"Partner '{partner.name}' ({partner.domain}) created by {caller.admin.email}")
    return partner


@router.post("/request-access")
async def request_access(
    body: AccessRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_caller),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """Self-service partner sign-up; new organizations wait for approval"""
    organization_name = (body.organization_name or "").strip()
    email = (body.email or "").strip()
    if not organization_name or not email:
        raise ValidationFailed("Organization name and email are required")
    if not is_strict_email(email):
        raise ValidationFailed("Invalid email format")
    if not 2 <= len(organization_name) <= 100:
        raise ValidationFailed("Organization name must be between 2 and 100 characters")

    domain = email.split("@")[1].lower()
    admin = caller.admin
    partner = db.query(Partner).filter(Partner.domain == domain).first()

    if partner is not None and partner.status == PARTNER_SUSPENDED:
        raise Conflict("This domain has been suspended. Please contact support.")

    if partner is not None and partner.status == PARTNER_ACTIVE:
        admin.partner_id = partner.id
        if admin.global_role != ROLE_MOIL_ADMIN:
            admin.global_role = ROLE_PARTNER_ADMIN
        db.commit()
        logger.info(f"{admin.email} linked to existing partner {partner.name}")
        return {
            "success": True,
            "message": "Your account has been linked to the existing partner",
            "partner": PartnerResponse.model_validate(partner).model_dump(by_alias=True, mode="json"),
        }

    created = partner is None
    if created:
        partner = Partner(
            name=organization_name,
            domain=domain,
            status=PARTNER_PENDING,
            program_name=organization_name,
            full_name=organization_name,
            logo_initial=organization_name[:1].upper(),
        )
        db.add(partner)
    if not partner.approval_token:
        partner.approval_token = generate_invitation_token()

    # Pending until approved: the admin is a partner admin without a partner link
    if admin.global_role != ROLE_MOIL_ADMIN:
        admin.global_role = ROLE_PARTNER_ADMIN
    db.commit()
    db.refresh(partner)

    if created:
        message = render_partner_access_request(
            settings.PARTNER_REQUESTS_EMAIL, partner.name, domain, admin.email,
            build_approval_url(partner.approval_token),
        )
        try:
            result = await email_sender.send(message)
            if not result.success:
                logger.warning(f"Access request notice for {domain} not sent: {result.error}")
        except Exception:
            logger.exception(f"Access request notice for {domain} failed")

    logger.info(f"Partner access requested by {admin.email} for '{partner.name}' ({domain})")
    return {
        "success": True,
        "message": (
            "Your request has been submitted and is awaiting approval" if created
            else "A request for this organization is already awaiting approval"
        ),
        "partner": PartnerResponse.model_validate(partner).model_dump(by_alias=True, mode="json"),
    }


@router.post("/{partner_id}/approve")
async def approve_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_moil_admin),
    email_sender: EmailSender = Depends(get_email_sender)
):
    partner = _partner_or_404(db, partner_id)
    if partner.status == PARTNER_ACTIVE:
        return {"success": True, "message": "Partner is already approved"}
    if partner.status == PARTNER_SUSPENDED:
        raise ValidationFailed("Cannot approve a suspended partner")

    linked, emails_sent = await activate_partner(db, partner, email_sender, approved_by=caller.admin_id)
    return {
        "success": True,
        "message": f"Partner {partner.name} has been approved",
        "linkedAdmins": linked,
        "emailsSent": emails_sent,
    }


@router.get("/grant-access/{token}")
async def grant_access(
    token: str,
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """One-click approval from the link mailed with a self-service request"""
    if len(token) < MIN_APPROVAL_TOKEN_LENGTH:
        raise ValidationFailed("Invalid approval token")

    partner = db.query(Partner).filter(Partner.approval_token == token).first()
    if partner is None:
        raise NotFound("Invalid or expired approval token")

    summary = {"id": partner.id, "name": partner.name, "domain": partner.domain}
    if partner.status == PARTNER_ACTIVE:
        return {
            "success": True,
            "message": "Partner already approved",
            "partner": {**summary, "status": partner.status},
            "alreadyApproved": True,
        }
    if partner.status == PARTNER_SUSPENDED:
        raise ValidationFailed("Cannot approve a suspended partner")

    linked, emails_sent = await activate_partner(db, partner, email_sender)
    return {
        "success": True,
        "message": "Partner approved successfully",
        "partner": {**summary, "status": PARTNER_ACTIVE},
        "linkedAdmins": linked,
        "emailsSent": emails_sent,
    }


@router.get("")
async def list_partners(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_moil_admin)
):
    counts = dict(
        db.query(Admin.partner_id, func.count(License.id))
        .join(License, License.admin_id == Admin.id)
        .filter(Admin.partner_id.isnot(None))
        .group_by(Admin.partner_id)
        .all()
    )
    partners = db.query(Partner).order_by(Partner.created_at.desc(), Partner.name).all()
    return {
        "partners": [
            {
                **PartnerResponse.model_validate(p).model_dump(by_alias=True, mode="json"),
                "licenseCount": counts.get(p.id, 0),
            }
            for p in partners
        ]
    }


@router.get("/branding/{slug}", response_model=BrandingResponse)
async def public_branding(slug: str, db: Session = Depends(get_db)):
    """Branding for partner sign-up pages; the slug comes from the activation link"""
    wanted = org_slug(slug)
    if wanted == settings.DEFAULT_ORG_SLUG:
        return _branding_response(None)

    partners = db.query(Partner).all()
    partner = next((p for p in partners if org_slug(p.name) == wanted), None)
    if partner is None:
        partner = next((p for p in partners if p.program_name and org_slug(p.program_name) == wanted), None)
    if partner is None:
        raise NotFound("Partner not found")
    if partner.status != PARTNER_ACTIVE:
        raise PermissionDenied("Partner is not active")
    return _branding_response(partner)


@router.get("/{partner_id}")
async def get_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_caller)
):
    if not _can_manage(caller, partner_id):
        raise PermissionDenied("Access denied")
    return {"partner": _detail(_partner_or_404(db, partner_id))}


@router.patch("/{partner_id}")
async def update_partner(
    partner_id: str,
    body: PartnerUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_caller)
):
    """Partner admins may rename their partner; moil admins may also change domain and status"""
    if not _can_manage(caller, partner_id):
        raise PermissionDenied("Access denied")
    partner = _partner_or_404(db, partner_id)

    allowed = ("name", "domain", "status") if caller.admin.is_moil_admin else ("name",)
    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if key in allowed and value is not None
    }
    if not changes:
        raise ValidationFailed("No valid fields to update")

    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not 2 <= len(changes["name"]) <= 100:
            raise ValidationFailed("Organization name must be between 2 and 100 characters")
    if "domain" in changes:
        changes["domain"] = _valid_domain(changes["domain"])
        taken = db.query(Partner.id).filter(Partner.domain == changes["domain"], Partner.id != partner.id).first()
        if taken:
            raise Conflict("A partner with this domain already exists")
    if "status" in changes and changes["status"] not in PARTNER_STATUSES:
        raise ValidationFailed(f"Status must be one of: {', '.join(PARTNER_STATUSES)}")

    previous_status = partner.status
    for key, value in changes.items():
        setattr(partner, key, value)
    if partner.status != PARTNER_PENDING:
        partner.approval_token = None
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("A partner with this domain already exists")
    db.refresh(partner)

    activity_type = {
        PARTNER_ACTIVE: activity.PARTNER_ACTIVATED,
        PARTNER_SUSPENDED: activity.PARTNER_SUSPENDED,
    }.get(changes.get("status"), activity.PARTNER_UPDATED)
    activity.log_activity(
        db, activity_type, f"Updated partner: {partner.name}",
        admin_id=caller.admin_id, partner_id=partner.id,
        details={"updated_fields": sorted(changes), "previous_status": previous_status},
    )
    logger.info(f"Partner {partner.name} updated by {caller.admin.email}: {sorted(changes)}")
    return {"partner": _detail(partner)}


@router.delete("/{partner_id}")
async def delete_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_moil_admin)
):
    """Delete a partner; its admins and teams stay but lose the partner link"""
    partner = _partner_or_404(db, partner_id)
    name, domain = partner.name, partner.domain

    db.query(Admin).filter(Admin.partner_id == partner.id).update({Admin.partner_id: None})
    db.query(Team).filter(Team.partner_id == partner.id).update({Team.partner_id: None})
    db.query(ActivityLog).filter(ActivityLog.partner_id == partner.id).update({ActivityLog.partner_id: None})
    db.delete(partner)
    db.commit()

    activity.log_activity(
        db, activity.PARTNER_DELETED, f'Deleted partner "{name}"',
        admin_id=caller.admin_id,
        details={"partner_id": partner_id, "name": name, "domain": domain},
    )
    logger.info(f"Partner {name} ({domain}) deleted by {caller.admin.email}")
    return {"success": True, "message": f'Partner "{name}" deleted'}


@router.get("/{partner_id}/stats", response_model=PartnerStats)
async def partner_stats(
    partner_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_caller)
):
    """License, team and admin totals; licenses count toward the partner of the admin who added them"""
    if not _can_manage(caller, partner_id):
        raise PermissionDenied("Access denied")
    partner = _partner_or_404(db, partner_id)

    licenses = (
        db.query(func.count(License.id))
        .select_from(License)
        .join(Admin, Admin.id == License.admin_id)
        .filter(Admin.partner_id == partner.id)
    )
    total = licenses.scalar() or 0
    activated = licenses.filter(License.is_activated.is_(True)).scalar() or 0
    purchased = (
        db.query(func.coalesce(func.sum(Team.purchased_license_count), 0))
        .filter(Team.partner_id == partner.id)
        .scalar()
    ) or 0

    return PartnerStats(
        total_licenses=total,
        activated_licenses=activated,
        pending_licenses=total - activated,
        total_teams=db.query(func.count(Team.id)).filter(Team.partner_id == partner.id).scalar() or 0,
        total_admins=db.query(func.count(Admin.id)).filter(Admin.partner_id == partner.id).scalar() or 0,
        total_purchased_licenses=purchased,
        available_licenses=purchased - total,
    )


@router.patch("/{partner_id}/branding", response_model=BrandingResponse)
async def update_branding(
    partner_id: str,
    body: BrandingUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_caller)
):
    partner = _partner_or_404(db, partner_id)
    if not _can_manage(caller, partner.id):
        raise PermissionDenied("Access denied")

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationFailed("No valid fields to update")
    for key in ("primary_color", "secondary_color"):
        value = changes.get(key)
        if value is not None and not is_hex_color(value):
            raise ValidationFailed(f"{key} must be a hex color like #5843BE")

    for key, value in changes.items():
        setattr(partner, key, value)
    db.commit()
    db.refresh(partner)
    logger.info(f"Branding for {partner.name} updated by {caller.admin.email}: {sorted(changes)}")
    return _branding_response(partner)
