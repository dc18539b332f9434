"""
Activation email dispatch and per-row delivery status reconciliation.

Rows are inserted first and patched with the send outcome afterwards, so a
row can briefly exist with no email status. Every row handed to the
dispatcher ends as either ``sent`` (with the provider message id) or
``failed``, including when the sender returns no result for it at all.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config.settings import settings
from ..models import License
from ..models.license import EMAIL_FAILED, EMAIL_SENT
from ..utils.security import org_slug
from .email import EmailSender, SendResult
from .identity import CallerContext
from .templates import render_license_activation, resolve_branding

logger = logging.getLogger(__name__)

ACTIVATION_REF = "moilPartners"


@dataclass
class DispatchOutcome:
    sent: int = 0
    failed: int = 0
    results: List[SendResult] = field(default_factory=list)


def partner_slug(caller: CallerContext) -> str:
    return org_slug(caller.partner.name) if caller.partner else settings.DEFAULT_ORG_SLUG


def build_activation_url(license_id: str, slug: str) -> str:
    query = urlencode({"licenseId": license_id, "ref": ACTIVATION_REF, "org": slug})
    return f"{settings.APP_URL.rstrip('/')}/register?{query}"


class NotificationDispatcher:
    def __init__(self, db: Session, sender: EmailSender):
        self.db = db
        self.sender = sender

    def _activation_message(self, license: License, caller: CallerContext):
        return render_license_activation(
            email=license.email,
            activation_url=build_activation_url(license.id, partner_slug(caller)),
            admin_name=caller.admin.full_name,
            branding=resolve_branding(caller.partner),
        )

    async def send_activation_emails(self, licenses: List[License], caller: CallerContext) -> DispatchOutcome:
        if not licenses:
            return DispatchOutcome()

        messages = [self._activation_message(license, caller) for license in licenses]
        try:
            results = await self.sender.send_batch(messages)
        except Exception:
            logger.exception(f"Activation email batch of {len(messages)} failed")
            results = []
        return self.reconcile(licenses, results or [])

    def reconcile(self, licenses: List[License], results: List[SendResult]) -> DispatchOutcome:
        """Write each row's delivery status; rows without a successful result become failed"""
        by_email: Dict[str, SendResult] = {result.email: result for result in results}
        outcome = DispatchOutcome(results=list(results))

        for license in licenses:
            result = by_email.get(license.email)
            if result is not None and result.success and result.message_id:
                license.message_id = result.message_id
                license.email_status = EMAIL_SENT
                outcome.sent += 1
            else:
                license.email_status = EMAIL_FAILED
                outcome.failed += 1

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record email status for {len(licenses)} license(s): {e}")
        return outcome

    async def resend_activation_email(self, license: License, caller: CallerContext) -> SendResult:
        """Single-row version of the batch send, same branding and link"""
        try:
            result = await self.sender.send(self._activation_message(license, caller))
        except Exception as e:
            logger.exception(f"Activation email to {license.email} failed")
            result = SendResult(email=license.email, success=False, error=str(e))
        self.reconcile([license], [result])
        return result
