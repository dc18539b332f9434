"""
Audit trail. Writing an entry is best-effort: a failure is logged and
discarded and never changes the outcome of the request that caused it.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import ActivityLog

logger = logging.getLogger(__name__)

LICENSE_ADDED = "license_added"
LICENSE_RESEND = "license_resend"
LICENSE_DELETED = "license_deleted"
LICENSE_EMAIL_UPDATED = "license_email_updated"
MEMBER_INVITED = "member_invited"
MEMBER_JOINED = "member_joined"
PARTNER_APPROVED = "partner_approved"
PARTNER_UPDATED = "partner_updated"
PARTNER_ACTIVATED = "partner_activated"
PARTNER_SUSPENDED = "partner_suspended"
PARTNER_DELETED = "partner_deleted"
LICENSE_COUNT_UPDATED = "license_count_updated"


def log_activity(
    db: Session,
    activity_type: str,
    description: str,
    admin_id: Optional[str] = None,
    team_id: Optional[str] = None,
    partner_id: Optional[str] = None,
    details: Optional[dict] = None
) -> Optional[ActivityLog]:
    """Append one entry in its own commit; returns None if it could not be written"""
    try:
        entry = ActivityLog(
            team_id=team_id,
            admin_id=admin_id,
            partner_id=partner_id,
            activity_type=activity_type,
            description=description,
            details=details or {},
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception:
        logger.exception(f"Failed to log activity '{activity_type}' (non-critical)")
        try:
            db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback after failed activity log also failed: {e}")
        return None


def log_team_activity(db: Session, team_id: Optional[str], activity_type: str, description: str,
                      admin_id: Optional[str] = None, details: Optional[dict] = None) -> Optional[ActivityLog]:
    """Team-scoped entry; solo callers have no team log, so nothing is written"""
    if not team_id:
        return None
    return log_activity(db, activity_type, description, admin_id=admin_id, team_id=team_id, details=details)
