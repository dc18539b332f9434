# conftest.py

import os

# Must be set before the application settings are imported
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["DISABLE_RATE_LIMIT"] = "true"
os.environ["RESEND_API_KEY"] = ""
os.environ["ACTIVATION_API_KEY"] = ""

from typing import Iterable, List, Optional, Set

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from partner_portal import models  # noqa: F401
from partner_portal.api.deps import get_activation_client, get_email_sender
from partner_portal.database import Base, get_db
from partner_portal.main import app
from partner_portal.models import Admin, Partner, Team, TeamMember
from partner_portal.models.admin import ROLE_MEMBER, ROLE_MOIL_ADMIN, ROLE_PARTNER_ADMIN
from partner_portal.models.partner import PARTNER_ACTIVE
from partner_portal.models.team import TEAM_ROLE_OWNER
from partner_portal.services.email import EmailMessage, EmailSender, SendResult
from partner_portal.services.identity import resolve_caller
from partner_portal.utils.security import create_access_token, get_password_hash

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeEmailSender(EmailSender):
    """Records every message; addresses in ``failing`` are rejected"""

    def __init__(self, failing: Optional[Iterable[str]] = None):
        self.failing = set(failing or ())
        self.sent: List[EmailMessage] = []
        self.raise_on_batch = False
        self.drop_batch_results = False
        self.statuses = {}

    async def send(self, message: EmailMessage) -> SendResult:
        if message.to in self.failing:
            return SendResult(email=message.to, success=False, error="rejected")
        self.sent.append(message)
        return SendResult(email=message.to, success=True, message_id=f"msg-{len(self.sent)}")

    async def send_batch(self, messages: List[EmailMessage]) -> List[SendResult]:
        if self.raise_on_batch:
            raise RuntimeError("provider unreachable")
        results = await super().send_batch(messages)
        return [] if self.drop_batch_results else results

    async def get_delivery_status(self, message_id: str) -> str:
        return self.statuses.get(message_id, "unknown")

    @property
    def recipients(self) -> List[str]:
        return [message.to for message in self.sent]


class FakeActivationClient:
    enabled = True

    def __init__(self, activated: Optional[Set[str]] = None, error: Optional[Exception] = None):
        self.activated = set(activated or ())
        self.error = error
        self.calls: List[List[str]] = []

    async def fetch_activated(self, emails):
        emails = list(emails)
        self.calls.append(emails)
        if self.error is not None:
            raise self.error
        return {email for email in emails if email in self.activated}


@pytest.fixture
def db():
    """Fresh in-memory schema per test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def activation_client():
    return FakeActivationClient()


@pytest.fixture
def client(db, email_sender, activation_client):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_activation_client] = lambda: activation_client
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_partner(db, name="Nerds Labs", domain="nerds.io", status=PARTNER_ACTIVE, **branding) -> Partner:
    partner = Partner(name=name, domain=domain, status=status, **branding)
    db.add(partner)
    db.commit()
    db.refresh(partner)
    return partner


def make_admin(db, email="owner@nerds.io", role=ROLE_PARTNER_ADMIN, partner=None,
               password="secret123", first_name="Ada", last_name="Owner") -> Admin:
    admin = Admin(
        email=email,
        first_name=first_name,
        last_name=last_name,
        global_role=role,
        partner_id=partner.id if partner else None,
        hashed_password=get_password_hash(password),
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


def make_team(db, owner: Admin, purchased=10, name="Nerds Team") -> Team:
    team = Team(name=name, purchased_license_count=purchased, owner_id=owner.id, partner_id=owner.partner_id)
    db.add(team)
    db.flush()
    db.add(TeamMember(team_id=team.id, admin_id=owner.id, role=TEAM_ROLE_OWNER))
    db.commit()
    db.refresh(team)
    return team


def add_member(db, team: Team, admin: Admin, role="member") -> TeamMember:
    member = TeamMember(team_id=team.id, admin_id=admin.id, role=role)
    db.add(member)
    db.commit()
    return member


def auth_headers(admin: Admin) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': admin.id})}"}


@pytest.fixture
def partner(db):
    return make_partner(db)


@pytest.fixture
def owner(db, partner):
    return make_admin(db, partner=partner)


@pytest.fixture
def team(db, owner):
    return make_team(db, owner)


@pytest.fixture
def team_caller(db, owner, team):
    return resolve_caller(db, owner)


@pytest.fixture
def solo_admin(db, partner):
    return make_admin(db, email="solo@nerds.io", partner=partner, first_name="Solo", last_name="Admin")


@pytest.fixture
def solo_caller(db, solo_admin):
    return resolve_caller(db, solo_admin)


@pytest.fixture
def moil_admin(db):
    return make_admin(db, email="root@moilapp.com", role=ROLE_MOIL_ADMIN, first_name="Moil", last_name="Admin")


@pytest.fixture
def plain_admin(db):
    return make_admin(db, email="someone@other.org", role=ROLE_MEMBER, first_name="Some", last_name="One")
