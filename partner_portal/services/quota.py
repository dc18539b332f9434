"""
Team license quota.

``available`` is always derived from a fresh count of assigned rows and never
stored. Solo admins (no team) have no quota.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import License, Team
from ..utils.exceptions import QuotaExceeded

logger = logging.getLogger(__name__)


@dataclass
class TeamQuota:
    team_id: str
    purchased: int
    assigned: int

    @property
    def available(self) -> int:
        # May be negative when the purchased count was lowered below usage
        return self.purchased - self.assigned


def count_assigned(db: Session, team_id: str) -> int:
    return db.query(func.count(License.id)).filter(License.team_id == team_id).scalar() or 0


def resolve_quota(db: Session, team: Optional[Team], lock: bool = False) -> Optional[TeamQuota]:
    """
    Compute the team's quota, or None for solo (unlimited) callers.

    With ``lock`` the team row is selected FOR UPDATE so that a check followed by
    an insert in the same transaction cannot be interleaved with another
    allocation for the same team (ignored by SQLite).
    """
    if team is None:
        return None
    purchased = team.purchased_license_count or 0
    if lock:
        query = db.query(Team.purchased_license_count).filter(Team.id == team.id).with_for_update()
        purchased = query.scalar() or 0
    return TeamQuota(team_id=team.id, purchased=purchased, assigned=count_assigned(db, team.id))


def ensure_capacity(quota: Optional[TeamQuota], requested: int) -> None:
    """Raise QuotaExceeded when the batch does not fit"""
    if quota is None:
        return
    available = quota.available
    if available <= 0 or requested > available:
        logger.info(
            f"Quota rejected for team {quota.team_id}: requested={requested} available={available}"
        )
        raise QuotaExceeded(available=available, requested=requested)
