"""
Partner Portal - operator command line
"""
import click
from rich.console import Console
from rich.table import Table

from .database import SessionLocal, init_db
from .models import Admin, License, Team
from .models.admin import GLOBAL_ROLES, ROLE_MOIL_ADMIN
from .services.quota import resolve_quota
from .utils.security import get_password_hash

console = Console()


@click.group(context_settings=dict(help_option_names=['-h', '--help']))
def cli():
    """Partner Portal - license administration"""
    pass


@cli.command('init-db')
def init_db_command():
    """Create all database tables."""
    init_db()
    console.print("[green]Database tables created[/green]")


@cli.command('create-admin')
@click.argument('email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--first-name', default='', help='First name')
@click.option('--last-name', default='', help='Last name')
@click.option('--role', type=click.Choice(GLOBAL_ROLES), default=ROLE_MOIL_ADMIN, show_default=True)
@click.option('--partner-id', default=None, help='Partner to link the admin to')
def create_admin(email, password, first_name, last_name, role, partner_id):
    """Create an admin account."""
    email = email.strip().lower()
    db = SessionLocal()
    try:
        if db.query(Admin.id).filter(Admin.email == email).first():
            raise click.ClickException(f"Admin {email} already exists")
        admin = Admin(
            email=email,
            first_name=first_name,
            last_name=last_name,
            global_role=role,
            partner_id=partner_id,
            hashed_password=get_password_hash(password),
        )
        db.add(admin)
        db.commit()
        console.print(f"[green]Created {role} {email}[/green] ({admin.id})")
    finally:
        db.close()


@cli.command('set-license-count')
@click.argument('team_id')
@click.argument('count', type=click.IntRange(min=0))
def set_license_count(team_id, count):
    """Set a team's purchased license count."""
    db = SessionLocal()
    try:
        team = db.query(Team).filter(Team.id == team_id).first()
        if team is None:
            raise click.ClickException(f"Team {team_id} not found")
        team.purchased_license_count = count
        db.commit()

        quota = resolve_quota(db, team)
        style = "red" if quota.available < 0 else "green"
        console.print(
            f"{team.name}: purchased={quota.purchased} assigned={quota.assigned} "
            f"available=[{style}]{quota.available}[/{style}]"
        )
    finally:
        db.close()


@cli.command('licenses')
@click.option('--team', 'team_id', default=None, help='Only licenses of this team')
@click.option('--limit', type=int, default=50, show_default=True)
def list_licenses(team_id, limit):
    """List the most recent licenses."""
    db = SessionLocal()
    try:
        query = db.query(License)
        if team_id:
            query = query.filter(License.team_id == team_id)
        licenses = query.order_by(License.created_at.desc(), License.id).limit(limit).all()

        table = Table(title=f"Licenses of team {team_id}" if team_id else "Licenses")
        table.add_column("Email", style="cyan", no_wrap=True)
        if not team_id:
            table.add_column("Team")
        table.add_column("Activated")
        table.add_column("Email status")
        table.add_column("Created")
        for license in licenses:
            row = [license.email]
            if not team_id:
                row.append(license.team_id or "-")
            row += [
                "[green]yes[/green]" if license.is_activated else "no",
                license.email_status or "-",
                license.created_at.strftime("%Y-%m-%d") if license.created_at else "",
            ]
            table.add_row(*row)
        console.print(table)
    finally:
        db.close()


if __name__ == '__main__':
    cli()
