from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from ._ids import new_id

ROLE_MOIL_ADMIN = "moil_admin"
ROLE_PARTNER_ADMIN = "partner_admin"
ROLE_MEMBER = "member"
GLOBAL_ROLES = (ROLE_MOIL_ADMIN, ROLE_PARTNER_ADMIN, ROLE_MEMBER)


class Admin(Base):
    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), default="")
    last_name = Column(String(100), default="")
    global_role = Column(String(32), default=ROLE_MEMBER, nullable=False)
    partner_id = Column(String(36), ForeignKey("partners.id"), nullable=True, index=True)
    hashed_password = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)

    partner = relationship("Partner", back_populates="admins")
    membership = relationship("TeamMember", back_populates="admin", uselist=False,
                              foreign_keys="TeamMember.admin_id")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def is_moil_admin(self) -> bool:
        return self.global_role == ROLE_MOIL_ADMIN

    @property
    def is_pending_partner(self) -> bool:
        """A partner admin that no partner has been linked to yet"""
        return self.global_role == ROLE_PARTNER_ADMIN and not self.partner_id
