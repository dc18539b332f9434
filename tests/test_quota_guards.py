"""
Tests for the team quota resolver and the duplicate guards
"""
import pytest

from partner_portal.models import License
from partner_portal.services.guards import (
    ensure_globally_unique,
    find_global_duplicates,
    split_existing_in_scope,
)
from partner_portal.services.identity import resolve_caller
from partner_portal.services.quota import ensure_capacity, resolve_quota
from partner_portal.utils.exceptions import DuplicateGlobalLicense, QuotaExceeded

from conftest import add_member, make_admin, make_partner, make_team


def _license(db, email, admin, team=None):
    row = License(email=email, admin_id=admin.id, team_id=team.id if team else None)
    db.add(row)
    db.commit()
    return row


def test_quota_counts_assigned_rows(db, owner, team):
    _license(db, "a@x.com", owner, team)
    _license(db, "b@x.com", owner, team)
    quota = resolve_quota(db, team)
    assert quota.purchased == 10
    assert quota.assigned == 2
    assert quota.available == 8


def test_quota_is_none_for_solo_callers(db):
    assert resolve_quota(db, None) is None
    ensure_capacity(None, 10_000)


def test_quota_with_lock_reads_the_team_row(db, team):
    quota = resolve_quota(db, team, lock=True)
    assert quota.purchased == 10


def test_capacity_rejects_oversized_batch(db, owner, team):
    team.purchased_license_count = 3
    db.commit()
    _license(db, "a@x.com", owner, team)

    with pytest.raises(QuotaExceeded) as exc:
        ensure_capacity(resolve_quota(db, team), 3)
    assert exc.value.available == 2
    assert exc.value.detail == "Only 2 license(s) available. You're trying to add 3."

    ensure_capacity(resolve_quota(db, team), 2)


def test_capacity_with_nothing_available(db, owner, team):
    team.purchased_license_count = 1
    db.commit()
    _license(db, "a@x.com", owner, team)

    with pytest.raises(QuotaExceeded) as exc:
        ensure_capacity(resolve_quota(db, team), 1)
    assert exc.value.detail == "No available licenses. Please purchase more licenses."


def test_negative_availability_after_lowering_purchase(db, owner, team):
    for email in ("a@x.com", "b@x.com", "c@x.com"):
        _license(db, email, owner, team)
    team.purchased_license_count = 1
    db.commit()

    quota = resolve_quota(db, team)
    assert quota.available == -2
    with pytest.raises(QuotaExceeded):
        ensure_capacity(quota, 1)


def test_global_duplicates_ignore_own_scope(db, owner, team, team_caller):
    other_partner = make_partner(db, name="Other Co", domain="other.co")
    other_owner = make_admin(db, email="boss@other.co", partner=other_partner)
    other_team = make_team(db, other_owner, name="Other Team")
    _license(db, "taken@x.com", other_owner, other_team)
    _license(db, "mine@x.com", owner, team)

    assert find_global_duplicates(db, ["mine@x.com", "taken@x.com", "new@x.com"], team_caller) == ["taken@x.com"]
    with pytest.raises(DuplicateGlobalLicense) as exc:
        ensure_globally_unique(db, ["taken@x.com"], team_caller)
    assert exc.value.emails == ["taken@x.com"]
    assert "cs@moilapp.com" in exc.value.detail
    assert exc.value.extra == {"emailsWithLicenses": ["taken@x.com"]}


def test_solo_license_of_another_admin_is_global_duplicate(db, solo_admin, solo_caller, team_caller):
    _license(db, "solo-owned@x.com", solo_admin)
    assert find_global_duplicates(db, ["solo-owned@x.com"], team_caller) == ["solo-owned@x.com"]
    assert find_global_duplicates(db, ["solo-owned@x.com"], solo_caller) == []


def test_teammates_share_scope(db, owner, team):
    teammate = make_admin(db, email="mate@nerds.io", partner=owner.partner)
    add_member(db, team, teammate)
    _license(db, "shared@x.com", owner, team)

    mate_caller = resolve_caller(db, teammate)
    assert find_global_duplicates(db, ["shared@x.com"], mate_caller) == []
    new, existing = split_existing_in_scope(db, ["shared@x.com", "fresh@x.com"], mate_caller)
    assert new == ["fresh@x.com"]
    assert existing == ["shared@x.com"]


def test_split_preserves_input_order(db, solo_admin, solo_caller):
    _license(db, "b@x.com", solo_admin)
    new, existing = split_existing_in_scope(db, ["c@x.com", "b@x.com", "a@x.com"], solo_caller)
    assert new == ["c@x.com", "a@x.com"]
    assert existing == ["b@x.com"]


def test_lookups_are_chunked(db, solo_admin, solo_caller):
    emails = [f"user{i}@x.com" for i in range(1200)]
    _license(db, "user1100@x.com", solo_admin)
    new, existing = split_existing_in_scope(db, emails, solo_caller)
    assert existing == ["user1100@x.com"]
    assert len(new) == 1199
