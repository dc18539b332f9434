from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from datetime import datetime, timezone
from typing import List
from urllib.parse import urlencode
import logging

from ...config.settings import settings
from ...database import get_db
from ...models import ActivityLog, Admin, Team, TeamInvitation, TeamMember
from ...models.team import (
    INVITATION_ACCEPTED,
    INVITATION_PENDING,
    TEAM_MANAGER_ROLES,
    TEAM_ROLE_ADMIN,
    TEAM_ROLE_MEMBER,
    TEAM_ROLE_OWNER,
)
from ...schemas.team import (
    ActivityEntry,
    InvitationAccept,
    InvitationCreate,
    InvitationResponse,
    LicenseCountUpdate,
    TeamCreate,
    TeamResponse,
)
from ...services import activity
from ...services.email import EmailSender
from ...services.identity import CallerContext
from ...services.normalizer import is_candidate_email
from ...services.templates import render_team_invitation, resolve_branding
from ...utils.exceptions import Conflict, NotFound, PermissionDenied, ValidationFailed
from ...utils.security import generate_invitation_token
from ..deps import get_caller, get_email_sender, get_partner_caller, require_moil_admin

logger = logging.getLogger(__name__)

router = APIRouter()

INVITABLE_ROLES = (TEAM_ROLE_ADMIN, TEAM_ROLE_MEMBER)


def _is_expired(invitation: TeamInvitation) -> bool:
    expires_at = invitation.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= datetime.now(timezone.utc)


def build_invite_url(token: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}/invite/accept?{urlencode({'token': token})}"


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TeamResponse)
async def create_team(
    body: TeamCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_moil_admin)
):
    owner = None
    if body.owner_id:
        owner = db.query(Admin).filter(Admin.id == body.owner_id).first()
        if owner is None:
            raise NotFound("Owner admin not found")
        if owner.membership is not None:
            raise Conflict("The owner already belongs to a team")

    team = Team(
        name=body.name.strip(),
        domain=(body.domain or "").strip().lower() or None,
        purchased_license_count=body.purchased_license_count,
        owner_id=owner.id if owner else None,
        partner_id=body.partner_id,
    )
    db.add(team)
    db.flush()
    if owner is not None:
        db.add(TeamMember(team_id=team.id, admin_id=owner.id, role=TEAM_ROLE_OWNER, invited_by=caller.admin_id))
    db.commit()
    db.refresh(team)

    logger.info(f"Team '{team.name}' ({team.id}) created by {caller.admin.email}")
    return team


@router.post("/{team_id}/update-license-count")
async def update_license_count(
    team_id: str,
    body: LicenseCountUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_moil_admin)
):
    team = db.query(Team).filter(Team.id == team_id).first()
    if team is None:
        raise NotFound("Team not found")

    previous = team.purchased_license_count
    team.purchased_license_count = body.purchased_license_count
    db.commit()
    db.refresh(team)

    activity.log_team_activity(
        db, team.id, activity.LICENSE_COUNT_UPDATED,
        f"Purchased license count changed from {previous} to {team.purchased_license_count}",
        admin_id=caller.admin_id,
        details={"previous": previous, "current": team.purchased_license_count},
    )
    return {
        "success": True,
        "message": "License count updated successfully",
        "team": TeamResponse.model_validate(team).model_dump(by_alias=True),
    }


@router.post("/invite", status_code=status.HTTP_201_CREATED, response_model=InvitationResponse)
async def invite_member(
    body: InvitationCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_partner_caller),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """Invite an email into the caller's team; only owners and admins may invite"""
    if caller.team is None or caller.team_role not in TEAM_MANAGER_ROLES:
        raise PermissionDenied("Only team owners and admins can invite members")

    email = body.email.strip().lower()
    if not is_candidate_email(email):
        raise ValidationFailed("Valid email address is required")
    if body.role not in INVITABLE_ROLES:
        raise ValidationFailed(f"Role must be one of: {', '.join(INVITABLE_ROLES)}")

    already_member = (
        db.query(TeamMember)
        .join(Admin, Admin.id == TeamMember.admin_id)
        .filter(TeamMember.team_id == caller.team_id, Admin.email == email)
        .first()
    )
    if already_member:
        raise Conflict("This person is already a member of your team")

    pending = (
        db.query(TeamInvitation)
        .filter(
            TeamInvitation.team_id == caller.team_id,
            TeamInvitation.email == email,
            TeamInvitation.status == INVITATION_PENDING,
        )
        .first()
    )
    if pending and not _is_expired(pending):
        raise Conflict("An invitation is already pending for this email")

    invitation = TeamInvitation(
        team_id=caller.team_id,
        email=email,
        role=body.role,
        token=generate_invitation_token(),
        status=INVITATION_PENDING,
        invited_by=caller.admin_id,
        expires_at=datetime.now(timezone.utc) + settings.INVITATION_EXPIRE_DELTA,
    )
    db.add(invitation)
    db.commit()
    db.refresh(invitation)

    message = render_team_invitation(
        email=email,
        inviter_name=caller.admin.full_name or caller.admin.email,
        team_name=caller.team.name,
        role=body.role,
        invite_url=build_invite_url(invitation.token),
        branding=resolve_branding(caller.partner),
    )
    try:
        result = await email_sender.send(message)
        if not result.success:
            logger.warning(f"Invitation email to {email} not sent: {result.error}")
    except Exception:
        logger.exception(f"Invitation email to {email} failed")

    activity.log_team_activity(
        db, caller.team_id, activity.MEMBER_INVITED, f"Invited {email} as {body.role}",
        admin_id=caller.admin_id, details={"email": email, "role": body.role},
    )
    return invitation


@router.get("/invite/accept")
async def preview_invitation(
    token: str = Query(...),
    db: Session = Depends(get_db)
):
    """Public invitation lookup used by the sign-up page"""
    invitation = db.query(TeamInvitation).filter(TeamInvitation.token == token).first()
    if invitation is None:
        raise NotFound("Invitation not found")
    if invitation.status != INVITATION_PENDING:
        raise ValidationFailed("This invitation is no longer valid")
    if _is_expired(invitation):
        raise ValidationFailed("This invitation has expired")

    inviter = invitation.inviter
    return {
        "email": invitation.email,
        "role": invitation.role,
        "teamName": invitation.team.name if invitation.team else None,
        "invitedBy": (inviter.full_name or inviter.email) if inviter else None,
        "expiresAt": invitation.expires_at.isoformat(),
    }


@router.post("/invite/accept")
async def accept_invitation(
    body: InvitationAccept,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_caller)
):
    if not body.token:
        raise ValidationFailed("Invitation token is required")

    invitation = (
        db.query(TeamInvitation)
        .filter(TeamInvitation.token == body.token, TeamInvitation.status == INVITATION_PENDING)
        .first()
    )
    if invitation is None or _is_expired(invitation):
        raise ValidationFailed("Invalid or expired invitation")

    admin = caller.admin
    if invitation.email.lower() != admin.email.lower():
        raise PermissionDenied(
            "This invitation is for a different email address",
            invitationEmail=invitation.email,
            yourEmail=admin.email,
        )

    if caller.membership is not None:
        if caller.membership.team_id == invitation.team_id:
            raise ValidationFailed("You are already a member of this team")
        raise ValidationFailed("You are already a member of another team. Please leave your current team first.")

    db.add(TeamMember(
        team_id=invitation.team_id,
        admin_id=admin.id,
        role=invitation.role,
        invited_by=invitation.invited_by,
    ))
    invitation.status = INVITATION_ACCEPTED
    invitation.accepted_at = datetime.now(timezone.utc)
    db.commit()

    activity.log_team_activity(
        db, invitation.team_id, activity.MEMBER_JOINED,
        f"{admin.email} joined the team as {invitation.role}",
        admin_id=admin.id,
        details={"invited_by": invitation.invited_by, "role": invitation.role},
    )
    logger.info(f"{admin.email} joined team {invitation.team_id}")
    return {
        "success": True,
        "message": "Successfully joined the team",
        "teamId": invitation.team_id,
        "role": invitation.role,
    }


@router.get("/activity", response_model=List[ActivityEntry])
async def team_activity(
    limit: int = Query(settings.ACTIVITY_PAGE_SIZE),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_partner_caller)
):
    if caller.team is None:
        return []
    limit = min(max(1, limit), settings.LICENSE_PAGE_MAX)
    return (
        db.query(ActivityLog)
        .filter(ActivityLog.team_id == caller.team_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id)
        .limit(limit)
        .all()
    )
