"""
License allocation workflow shared by single-add, bulk-add and CSV import.

Checks run in a fixed order and an earlier failure stops everything after it:

    quota -> global uniqueness (reject) -> scope existence (skip)
          -> external activation prefetch -> insert -> notify -> activity log

Nothing is written before the insert step. Email delivery, the external
prefetch and the activity log degrade silently; only quota, global duplicates
and a failed insert make the whole call fail.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import License
from ..schemas.license import LicenseSummary
from ..utils.exceptions import AllocationFailed, QuotaExceeded
from .activation import ActivationStatusClient
from .activity import LICENSE_ADDED, log_team_activity
from .email import EmailSender
from .guards import ensure_globally_unique, split_existing_in_scope
from .identity import CallerContext
from .normalizer import EmailBatch
from .notifications import NotificationDispatcher
from .quota import ensure_capacity, resolve_quota

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    received: int = 0
    licenses: List[License] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    pre_activated: Set[str] = field(default_factory=set)
    emails_sent: int = 0
    emails_failed: int = 0

    @property
    def success(self) -> int:
        return len(self.licenses)

    @property
    def failed(self) -> int:
        return len(self.invalid) + len(self.skipped)

    @property
    def errors(self) -> List[str]:
        return (
            [f"Invalid email format: {email}" for email in self.invalid]
            + [f"License already exists for: {email}" for email in self.skipped]
        )

    @property
    def message(self) -> str:
        return (
            f"Processed {self.received} emails: {self.success} licenses added, "
            f"{self.emails_sent} emails sent, {self.failed} failed"
        )

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "success": self.success,
            "failed": self.failed,
            "emailsSent": self.emails_sent,
            "emailsFailed": self.emails_failed,
            "errors": self.errors,
            "licenses": [
                LicenseSummary.model_validate(license).model_dump(by_alias=True, mode="json")
                for license in self.licenses
            ],
        }


class LicenseAllocator:
    def __init__(
        self,
        db: Session,
        email_sender: EmailSender,
        activation_client: Optional[ActivationStatusClient] = None
    ):
        self.db = db
        self.email_sender = email_sender
        self.activation_client = activation_client

    async def allocate(
        self,
        caller: CallerContext,
        batch: EmailBatch,
        activity_description: Optional[str] = None
    ) -> AllocationResult:
        result = AllocationResult(received=batch.received, invalid=list(batch.invalid))
        if batch.is_empty:
            result.skipped = list(batch.duplicates)
            return result

        candidates = batch.candidates
        ensure_capacity(resolve_quota(self.db, caller.team), len(candidates))
        ensure_globally_unique(self.db, candidates, caller)

        new_emails, existing = split_existing_in_scope(self.db, candidates, caller)
        # Repeats inside the batch count as already existing in scope
        result.skipped = existing + list(batch.duplicates)
        if not new_emails:
            return result

        result.pre_activated = await self.prefetch_activated(new_emails)
        result.licenses = self.insert(caller, new_emails, result.pre_activated)

        needs_email = [license for license in result.licenses if not license.is_activated]
        outcome = await NotificationDispatcher(self.db, self.email_sender).send_activation_emails(
            needs_email, caller
        )
        result.emails_sent = outcome.sent
        result.emails_failed = outcome.failed

        log_team_activity(
            self.db,
            caller.team_id,
            LICENSE_ADDED,
            activity_description or f"Added {result.success} license{'s' if result.success > 1 else ''}",
            admin_id=caller.admin_id,
            details={"count": result.success, "emails_sent": result.emails_sent},
        )
        logger.info(
            f"Allocation by {caller.admin.email}: {result.success} added, "
            f"{result.emails_sent} emailed, {result.failed} failed"
        )
        return result

    async def prefetch_activated(self, emails: List[str]) -> Set[str]:
        """Emails already activated externally; any failure means none are"""
        if self.activation_client is None or not self.activation_client.enabled:
            return set()
        try:
            return await self.activation_client.fetch_activated(emails)
        except Exception:
            logger.exception("Error checking external license status; continuing without it")
            return set()

    def insert(self, caller: CallerContext, emails: List[str], pre_activated: Set[str]) -> List[License]:
        """Insert one row per email in a single commit"""
        now = datetime.utcnow()
        try:
            # Re-check under a row lock on the team so concurrent batches cannot oversell
            ensure_capacity(resolve_quota(self.db, caller.team, lock=True), len(emails))
        except QuotaExceeded:
            self.db.rollback()
            raise

        try:
            rows = [
                License(
                    email=email,
                    admin_id=caller.admin_id,
                    team_id=caller.team_id,
                    business_name="",
                    business_type="",
                    is_activated=email in pre_activated,
                    activated_at=now if email in pre_activated else None,
                    performed_by=caller.admin_id,
                )
                for email in emails
            ]
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Batch insert error: {e}")
            raise AllocationFailed(str(e))

        for row in rows:
            self.db.refresh(row)
        return rows
