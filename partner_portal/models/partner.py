from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from ._ids import new_id

PARTNER_PENDING = "pending"
PARTNER_ACTIVE = "active"
PARTNER_SUSPENDED = "suspended"
PARTNER_STATUSES = (PARTNER_PENDING, PARTNER_ACTIVE, PARTNER_SUSPENDED)


class Partner(Base):
    __tablename__ = "partners"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), unique=True, index=True, nullable=False)
    status = Column(String(32), default=PARTNER_PENDING, nullable=False)  # 'pending', 'active', 'suspended'
    # One-click approval link for a self-service request; cleared once active
    approval_token = Column(String(128), unique=True, index=True, nullable=True)

    # Branding
    primary_color = Column(String(7), nullable=True)
    secondary_color = Column(String(7), nullable=True)
    logo_url = Column(String(1024), nullable=True)
    logo_initial = Column(String(4), nullable=True)
    program_name = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    support_email = Column(String(255), nullable=True)
    license_duration = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    admins = relationship("Admin", back_populates="partner")
    teams = relationship("Team", back_populates="partner")
