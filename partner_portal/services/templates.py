"""
Partner branding and the HTML bodies of the emails the portal sends.
"""
from dataclasses import dataclass
from typing import Optional

from jinja2 import DictLoader, Environment

from ..config.settings import settings
from ..models import Partner
from .email import EmailMessage


@dataclass
class Branding:
    program_name: str
    full_name: str
    logo_url: Optional[str]
    logo_initial: str
    primary_color: str
    support_email: str
    license_duration: str


def default_branding() -> Branding:
    return Branding(
        program_name=settings.DEFAULT_PROGRAM_NAME,
        full_name=settings.DEFAULT_PROGRAM_NAME,
        logo_url=settings.DEFAULT_LOGO_URL,
        logo_initial=settings.DEFAULT_LOGO_INITIAL,
        primary_color=settings.DEFAULT_PRIMARY_COLOR,
        support_email=settings.DEFAULT_SUPPORT_EMAIL,
        license_duration=settings.DEFAULT_LICENSE_DURATION,
    )


def resolve_branding(partner: Optional[Partner]) -> Branding:
    """
    Partner branding with platform fallbacks for anything not customized.

    A partner without a logo gets its initial badge rather than the platform logo.
    """
    if partner is None:
        return default_branding()
    name = partner.name or settings.DEFAULT_PROGRAM_NAME
    return Branding(
        program_name=partner.program_name or name,
        full_name=partner.full_name or name,
        logo_url=partner.logo_url or None,
        logo_initial=partner.logo_initial or name[:1].upper() or settings.DEFAULT_LOGO_INITIAL,
        primary_color=partner.primary_color or settings.DEFAULT_PRIMARY_COLOR,
        support_email=partner.support_email or settings.DEFAULT_SUPPORT_EMAIL,
        license_duration=partner.license_duration or settings.DEFAULT_LICENSE_DURATION,
    )


LAYOUT_TEMPLATE = """<!DOCTYPE html>
<html>
<body style="font-family:Arial,sans-serif;background:#f6f6f9;padding:24px;">
  <div style="max-width:560px;margin:0 auto;background:#fff;border-radius:8px;padding:32px;">
    {% if branding.logo_url %}
    <img src="{{ branding.logo_url }}" alt="{{ branding.program_name }}" height="48" style="display:block;margin:0 auto;" />
    {% else %}
    <div style="width:48px;height:48px;border-radius:24px;margin:0 auto;background:{{ branding.primary_color }};color:#fff;font-size:24px;line-height:48px;text-align:center;font-weight:bold;">{{ branding.logo_initial }}</div>
    {% endif %}
    {% block body %}{% endblock %}
    {% if button_url %}
    <p style="text-align:center;margin:32px 0;">
      <a href="{{ button_url }}" style="background:{{ branding.primary_color }};color:#fff;padding:12px 24px;border-radius:6px;text-decoration:none;">{{ button_label }}</a>
    </p>
    {% endif %}
    {% block footer %}{% endblock %}
    <p style="color:#888;font-size:12px;margin-top:32px;">
      Questions? Contact <a href="mailto:{{ branding.support_email }}">{{ branding.support_email }}</a>
    </p>
  </div>
</body>
</html>
"""

ACTIVATION_TEMPLATE = """{% extends "layout.html" %}
{% block body %}
<h1>Welcome to {{ branding.program_name }}!</h1>
<p>Hi {{ email }},</p>
<p>{{ admin_name or branding.full_name }} has given you a {{ branding.license_duration }} license through {{ branding.full_name }}. Activate it to get started.</p>
{% endblock %}
{% block footer %}
<p style="font-size:12px;color:#888;">Or paste this link into your browser: {{ button_url }}</p>
{% endblock %}
"""

INVITATION_TEMPLATE = """{% extends "layout.html" %}
{% block body %}
<h1>You've been invited to join {{ team_name }}</h1>
<p>{{ inviter_name }} invited you to join <strong>{{ team_name }}</strong> on {{ branding.program_name }} as {{ role }}.</p>
{% endblock %}
"""

PARTNER_ACCESS_REQUEST_TEMPLATE = """{% extends "layout.html" %}
{% block body %}
<h1>New partner access request</h1>
<p>{{ requester_email }} asked for partner access for <strong>{{ organization_name }}</strong> ({{ domain }}).</p>
{% endblock %}
"""

PARTNER_APPROVED_TEMPLATE = """{% extends "layout.html" %}
{% block body %}
<h1>Your partner account has been approved!</h1>
<p>{{ organization_name }} now has access to {{ branding.program_name }}.</p>
{% endblock %}
"""

# Autoescape covers every value interpolated from partner or admin input
env = Environment(
    loader=DictLoader({
        "layout.html": LAYOUT_TEMPLATE,
        "license_activation.html": ACTIVATION_TEMPLATE,
        "team_invitation.html": INVITATION_TEMPLATE,
        "partner_approved.html": PARTNER_APPROVED_TEMPLATE,
        "partner_access_request.html": PARTNER_ACCESS_REQUEST_TEMPLATE,
    }),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


def _render(name: str, **context) -> str:
    return env.get_template(name).render(**context)


def render_license_activation(email: str, activation_url: str, admin_name: str, branding: Branding) -> EmailMessage:
    html = _render(
        "license_activation.html",
        branding=branding,
        email=email,
        admin_name=admin_name,
        button_url=activation_url,
        button_label="Activate your license",
    )
    text = (
        f"Welcome to {branding.program_name}!\n\n"
        f"{admin_name or branding.full_name} has given you a license. Activate it here:\n{activation_url}\n"
    )
    return EmailMessage(
        to=email,
        subject=f"Welcome to {branding.program_name}!",
        html=html,
        text=text,
    )


def render_team_invitation(
    email: str, inviter_name: str, team_name: str, role: str, invite_url: str, branding: Branding
) -> EmailMessage:
    html = _render(
        "team_invitation.html",
        branding=branding,
        inviter_name=inviter_name,
        team_name=team_name,
        role=role,
        button_url=invite_url,
        button_label="Accept invitation",
    )
    return EmailMessage(
        to=email,
        subject=f"You've been invited to join {team_name} on {branding.program_name}!",
        html=html,
        text=f"{inviter_name} invited you to join {team_name}. Accept here:\n{invite_url}\n",
    )


def render_partner_approved(email: str, organization_name: str, login_url: str) -> EmailMessage:
    branding = default_branding()
    html = _render(
        "partner_approved.html",
        branding=branding,
        organization_name=organization_name,
        button_url=login_url,
        button_label="Log in",
    )
    return EmailMessage(
        to=email,
        subject="Your Partner Account Has Been Approved!",
        html=html,
        text=f"{organization_name} has been approved. Log in at {login_url}\n",
    )


def render_partner_access_request(
    email: str, organization_name: str, domain: str, requester_email: str, approve_url: str
) -> EmailMessage:
    branding = default_branding()
    html = _render(
        "partner_access_request.html",
        branding=branding,
        organization_name=organization_name,
        domain=domain,
        requester_email=requester_email,
        button_url=approve_url,
        button_label="Approve partner",
    )
    return EmailMessage(
        to=email,
        subject=f"Partner access request: {organization_name}",
        html=html,
        text=f"{requester_email} requested partner access for {organization_name} ({domain}). Approve: {approve_url}\n",
    )
