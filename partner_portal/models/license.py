from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean
from sqlalchemy.sql import func
from ..database import Base
from ._ids import new_id

EMAIL_SENT = "sent"
EMAIL_FAILED = "failed"
# Provider events after which a message's status can no longer change
EMAIL_FINAL_STATUSES = ("bounced", "complained", "failed")


class License(Base):
    __tablename__ = "licenses"

    id = Column(String(36), primary_key=True, default=new_id)
    # Unique across every tenant; enforced by the allocation guards, not the schema
    email = Column(String(255), index=True, nullable=False)
    admin_id = Column(String(36), ForeignKey("admins.id"), nullable=False, index=True)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=True, index=True)
    business_name = Column(String(255), default="")
    business_type = Column(String(255), default="")
    is_activated = Column(Boolean, default=False, nullable=False)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    message_id = Column(String(255), nullable=True)
    email_status = Column(String(32), nullable=True)
    email_status_checked_at = Column(DateTime(timezone=True), nullable=True)
    performed_by = Column(String(36), ForeignKey("admins.id"), nullable=True)
