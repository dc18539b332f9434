"""
Tests for the /api/teams endpoints
"""
from datetime import datetime, timedelta, timezone

from partner_portal.models import ActivityLog, Team, TeamInvitation, TeamMember
from partner_portal.models.team import INVITATION_ACCEPTED, INVITATION_PENDING

from conftest import add_member, auth_headers, make_admin, make_team


def _invitation(db, team, email="invitee@nerds.io", role="member", expires_in=timedelta(days=7), token="tok-1"):
    invitation = TeamInvitation(
        team_id=team.id,
        email=email,
        role=role,
        token=token,
        status=INVITATION_PENDING,
        invited_by=team.owner_id,
        expires_at=datetime.now(timezone.utc) + expires_in,
    )
    db.add(invitation)
    db.commit()
    return invitation


def test_moil_admin_creates_team(client, db, moil_admin, partner):
    owner = make_admin(db, email="lead@nerds.io", partner=partner)
    response = client.post(
        "/api/teams",
        json={"name": "Growth", "purchasedLicenseCount": 25, "ownerId": owner.id, "partnerId": partner.id},
        headers=auth_headers(moil_admin),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["purchasedLicenseCount"] == 25
    membership = db.query(TeamMember).filter(TeamMember.admin_id == owner.id).one()
    assert membership.role == "owner"
    assert membership.team_id == body["id"]


def test_only_moil_admins_create_teams(client, owner):
    response = client.post("/api/teams", json={"name": "Mine"}, headers=auth_headers(owner))
    assert response.status_code == 403
    assert response.json()["error"] == "Access denied. Moil admin access required."


def test_update_license_count(client, db, moil_admin, team):
    response = client.post(
        f"/api/teams/{team.id}/update-license-count",
        json={"purchasedLicenseCount": 40},
        headers=auth_headers(moil_admin),
    )

    assert response.status_code == 200
    assert response.json()["team"]["purchasedLicenseCount"] == 40
    db.refresh(team)
    assert team.purchased_license_count == 40
    assert db.query(ActivityLog).filter(ActivityLog.activity_type == "license_count_updated").count() == 1


def test_update_license_count_rejects_negative(client, moil_admin, team):
    response = client.post(
        f"/api/teams/{team.id}/update-license-count",
        json={"purchasedLicenseCount": -1},
        headers=auth_headers(moil_admin),
    )
    assert response.status_code == 400


def test_update_license_count_unknown_team(client, moil_admin):
    response = client.post(
        "/api/teams/missing/update-license-count",
        json={"purchasedLicenseCount": 1},
        headers=auth_headers(moil_admin),
    )
    assert response.status_code == 404


def test_owner_invites_member(client, db, owner, team, email_sender):
    response = client.post(
        "/api/teams/invite", json={"email": "New@Nerds.io", "role": "admin"}, headers=auth_headers(owner)
    )

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "new@nerds.io"
    assert body["status"] == "pending"
    invitation = db.query(TeamInvitation).one()
    assert len(invitation.token) >= 32
    assert email_sender.recipients == ["new@nerds.io"]
    assert f"token={invitation.token}" in email_sender.sent[0].html


def test_invite_survives_email_failure(client, db, owner, team, email_sender):
    email_sender.failing.add("new@nerds.io")
    response = client.post("/api/teams/invite", json={"email": "new@nerds.io"}, headers=auth_headers(owner))
    assert response.status_code == 201
    assert db.query(TeamInvitation).count() == 1


def test_duplicate_pending_invitation(client, db, owner, team):
    _invitation(db, team, email="new@nerds.io")
    response = client.post("/api/teams/invite", json={"email": "new@nerds.io"}, headers=auth_headers(owner))
    assert response.status_code == 409


def test_members_cannot_invite(client, db, owner, team):
    member = make_admin(db, email="member@nerds.io", partner=owner.partner)
    add_member(db, team, member)
    response = client.post("/api/teams/invite", json={"email": "x@nerds.io"}, headers=auth_headers(member))
    assert response.status_code == 403


def test_invite_rejects_owner_role(client, owner, team):
    response = client.post(
        "/api/teams/invite", json={"email": "x@nerds.io", "role": "owner"}, headers=auth_headers(owner)
    )
    assert response.status_code == 400


def test_preview_invitation(client, db, owner, team):
    _invitation(db, team)

    response = client.get("/api/teams/invite/accept?token=tok-1")

    assert response.status_code == 200
    body = response.json()
    assert body["teamName"] == "Nerds Team"
    assert body["invitedBy"] == "Ada Owner"
    assert client.get("/api/teams/invite/accept?token=unknown").status_code == 404


def test_preview_expired_invitation(client, db, team):
    _invitation(db, team, expires_in=timedelta(days=-1))
    assert client.get("/api/teams/invite/accept?token=tok-1").status_code == 400


def test_accept_invitation(client, db, team, partner):
    invitee = make_admin(db, email="invitee@nerds.io", partner=partner)
    _invitation(db, team, email="INVITEE@nerds.io", role="admin")

    response = client.post("/api/teams/invite/accept", json={"token": "tok-1"}, headers=auth_headers(invitee))

    assert response.status_code == 200
    membership = db.query(TeamMember).filter(TeamMember.admin_id == invitee.id).one()
    assert membership.role == "admin"
    assert db.query(TeamInvitation).one().status == INVITATION_ACCEPTED
    assert db.query(ActivityLog).filter(ActivityLog.activity_type == "member_joined").count() == 1


def test_accept_with_wrong_email(client, db, team, plain_admin):
    _invitation(db, team)
    response = client.post("/api/teams/invite/accept", json={"token": "tok-1"}, headers=auth_headers(plain_admin))
    assert response.status_code == 403
    assert response.json()["invitationEmail"] == "invitee@nerds.io"


def test_accept_expired_invitation(client, db, team, partner):
    invitee = make_admin(db, email="invitee@nerds.io", partner=partner)
    _invitation(db, team, expires_in=timedelta(days=-1))
    response = client.post("/api/teams/invite/accept", json={"token": "tok-1"}, headers=auth_headers(invitee))
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid or expired invitation"


def test_accept_when_already_in_a_team(client, db, team, partner):
    invitee = make_admin(db, email="invitee@nerds.io", partner=partner)
    make_team(db, invitee, name="Invitee Team")
    _invitation(db, team)

    response = client.post("/api/teams/invite/accept", json={"token": "tok-1"}, headers=auth_headers(invitee))

    assert response.status_code == 400
    assert "another team" in response.json()["error"]
    assert db.query(Team).count() == 2


def test_team_activity(client, db, owner, team):
    client.post("/api/licenses/add", json={"email": "a@x.com"}, headers=auth_headers(owner))

    response = client.get("/api/teams/activity", headers=auth_headers(owner))

    assert response.status_code == 200
    entries = response.json()
    assert entries[0]["activityType"] == "license_added"
    assert entries[0]["details"] == {"count": 1, "emails_sent": 1}


def test_solo_admin_has_no_activity(client, solo_admin):
    response = client.get("/api/teams/activity", headers=auth_headers(solo_admin))
    assert response.json() == []
