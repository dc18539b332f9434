from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from ..database import Base
from ._ids import new_id


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=True, index=True)
    admin_id = Column(String(36), ForeignKey("admins.id"), nullable=True)
    partner_id = Column(String(36), ForeignKey("partners.id"), nullable=True)
    activity_type = Column(String(64), nullable=False)  # 'license_added', 'license_resend', ...
    description = Column(String(1024), default="")
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
