from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from ._ids import new_id

TEAM_ROLE_OWNER = "owner"
TEAM_ROLE_ADMIN = "admin"
TEAM_ROLE_MEMBER = "member"
TEAM_MANAGER_ROLES = (TEAM_ROLE_OWNER, TEAM_ROLE_ADMIN)

INVITATION_PENDING = "pending"
INVITATION_ACCEPTED = "accepted"


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=True)
    purchased_license_count = Column(Integer, default=0, nullable=False)
    owner_id = Column(String(36), ForeignKey("admins.id"), nullable=True)
    partner_id = Column(String(36), ForeignKey("partners.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    partner = relationship("Partner", back_populates="teams")
    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"
    # An admin belongs to at most one team
    __table_args__ = (UniqueConstraint("admin_id", name="uniq_team_member_admin"),)

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    admin_id = Column(String(36), ForeignKey("admins.id"), nullable=False)
    role = Column(String(32), default=TEAM_ROLE_MEMBER, nullable=False)
    invited_by = Column(String(36), ForeignKey("admins.id"), nullable=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")
    admin = relationship("Admin", back_populates="membership", foreign_keys=[admin_id])


class TeamInvitation(Base):
    __tablename__ = "team_invitations"

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(32), default=TEAM_ROLE_MEMBER, nullable=False)
    token = Column(String(128), unique=True, index=True, nullable=False)
    status = Column(String(32), default=INVITATION_PENDING, nullable=False)
    invited_by = Column(String(36), ForeignKey("admins.id"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team")
    inviter = relationship("Admin", foreign_keys=[invited_by])
