"""
Identity/session lookup: who is calling, which team they sit in, and which
partner brands their emails.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import Admin, License, Partner, Team, TeamMember


@dataclass
class CallerContext:
    admin: Admin
    membership: Optional[TeamMember] = None
    team: Optional[Team] = None
    partner: Optional[Partner] = None

    @property
    def admin_id(self) -> str:
        return self.admin.id

    @property
    def team_id(self) -> Optional[str]:
        return self.team.id if self.team else None

    @property
    def is_solo(self) -> bool:
        return self.team is None

    @property
    def team_role(self) -> Optional[str]:
        return self.membership.role if self.membership else None

    def scope_filter(self):
        """Rows owned by the caller's scope: the team, or the solo admin's own rows"""
        if self.team is not None:
            return License.team_id == self.team.id
        return License.admin_id == self.admin.id

    def outside_scope_filter(self):
        if self.team is not None:
            return or_(License.team_id.is_(None), License.team_id != self.team.id)
        return License.admin_id != self.admin.id


def resolve_caller(db: Session, admin: Admin) -> CallerContext:
    """Load team membership and partner for an authenticated admin"""
    membership = db.query(TeamMember).filter(TeamMember.admin_id == admin.id).first()
    team = membership.team if membership else None
    partner = admin.partner if admin.partner_id else None
    return CallerContext(admin=admin, membership=membership, team=team, partner=partner)
