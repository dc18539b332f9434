"""
Duplicate checks run before any license row is written.

Two policies apply:

* global uniqueness: an email licensed anywhere outside the caller's scope
  rejects the whole batch (one person cannot hold seats under two partners);
* scope existence: emails already licensed inside the caller's scope are
  skipped and reported, the rest of the batch proceeds.
"""
from typing import Iterator, List, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from ..config.settings import settings
from ..models import License
from ..utils.exceptions import DuplicateGlobalLicense
from .identity import CallerContext

LOOKUP_CHUNK_SIZE = 500


def _chunks(items: Sequence[str], size: int = LOOKUP_CHUNK_SIZE) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _licensed_emails(db: Session, emails: Sequence[str], *criteria) -> Set[str]:
    found = set()
    for chunk in _chunks(list(emails)):
        rows = db.query(License.email).filter(License.email.in_(chunk), *criteria).all()
        found.update(row.email for row in rows)
    return found


def find_global_duplicates(db: Session, emails: Sequence[str], caller: CallerContext) -> List[str]:
    """Candidates that already hold a license under another team, admin or partner"""
    licensed = _licensed_emails(db, emails, caller.outside_scope_filter())
    return [email for email in emails if email in licensed]


def ensure_globally_unique(db: Session, emails: Sequence[str], caller: CallerContext) -> None:
    duplicates = find_global_duplicates(db, emails, caller)
    if duplicates:
        raise DuplicateGlobalLicense(duplicates, settings.DUPLICATE_CONTACT_EMAIL)


def split_existing_in_scope(
    db: Session, emails: Sequence[str], caller: CallerContext
) -> Tuple[List[str], List[str]]:
    """Return (new, existing) preserving input order"""
    existing = _licensed_emails(db, emails, caller.scope_filter())
    new = [email for email in emails if email not in existing]
    return new, [email for email in emails if email in existing]
