"""
Email batch normalization.

Turns raw input (an explicit list, comma separated tags, or CSV text) into
lower-cased candidate emails. An entry is a candidate when it is non-empty and
contains '@'; nothing stricter is checked. Repeated addresses inside one batch
are kept once and the repeats reported separately.
"""
import csv
import io
from dataclasses import dataclass, field
from typing import Iterable, List


@dataclass
class EmailBatch:
    candidates: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    received: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.candidates


def is_candidate_email(value: str) -> bool:
    return bool(value) and "@" in value


def normalize_emails(entries: Iterable[str]) -> EmailBatch:
    """Lower-case, validate and de-duplicate a sequence of raw entries"""
    batch = EmailBatch()
    seen = set()
    for raw in entries:
        batch.received += 1
        entry = (raw or "").strip()
        email = entry.lower()
        if not is_candidate_email(email):
            batch.invalid.append(entry)
            continue
        if email in seen:
            batch.duplicates.append(email)
            continue
        seen.add(email)
        batch.candidates.append(email)
    return batch


def split_tags(raw: str) -> List[str]:
    """Comma/newline separated tag input from the interactive form"""
    parts = []
    for line in (raw or "").splitlines():
        parts.extend(segment.strip() for segment in line.split(","))
    return [part for part in parts if part]


def read_csv_emails(text: str) -> List[str]:
    """First column of every non-blank row after the header"""
    lines = [line for line in (text or "").splitlines() if line.strip()]
    rows = csv.reader(io.StringIO("\n".join(lines[1:])))
    return [row[0].strip() if row else "" for row in rows]


def parse_tags(raw: str) -> EmailBatch:
    return normalize_emails(split_tags(raw))


def parse_csv(text: str) -> EmailBatch:
    return normalize_emails(read_csv_emails(text))


def parse_list(entries: Iterable[str]) -> EmailBatch:
    """Explicit list from the API; an entry may itself hold comma separated tags"""
    flattened = []
    for raw in entries:
        flattened.extend(split_tags(raw) or [raw])
    return normalize_emails(flattened)
