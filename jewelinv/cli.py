import click

from jewelinv.errors import InventoryError
from jewelinv.extensions import db
from jewelinv.models import User
from jewelinv.services import ledger


def upsert_user(username: str, password: str, role: str) -> tuple[User, bool]:
    """Create ``username`` or reset its password and role; returns (user, created)."""

    user = User.query.filter_by(username=username).first()
    created = user is None
    if created:
        user = User(username=username)
        db.session.add(user)
    user.set_password(password)
    user.role = role
    db.session.commit()
    return user, created


def register_cli(app):
    @app.cli.command("seed-admin")
    @click.option("--username", default=None, help="Defaults to ADMIN_USER.")
    @click.option("--password", default=None, help="Defaults to ADMIN_PASSWORD.")
    def seed_admin(username, password) -> None:
        """Create the admin account, or reset its password if it exists."""
        username = username or app.config.get("ADMIN_USER", "admin")
        password = password or app.config.get("ADMIN_PASSWORD", "admin123")
        _, created = upsert_user(username, password, User.ROLE_ADMIN)
        if created:
            click.echo(f"Admin {username} created.")
        else:
            click.echo(f"Admin {username} already existed; password updated.")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--role", type=click.Choice(User.ROLES), default=User.ROLE_STAFF, show_default=True)
    def create_user(username, password, role) -> None:
        """Add a staff or admin login."""
        username = username.strip()
        if not username:
            raise click.BadParameter("username must not be blank")
        _, created = upsert_user(username, password, role)
        click.echo(f"User {username} {'created' if created else 'updated'} with role {role}.")

    @app.cli.command("reconcile-ledger")
    def reconcile_ledger() -> None:
        """Rebuild product snapshots that drifted from the transaction log."""
        repaired = ledger.reconcile_snapshots()
        if not repaired:
            click.echo("All product snapshots match the transaction log.")
            return
        click.echo(f"Repaired {len(repaired)} product snapshot(s): {', '.join(map(str, repaired))}")

    @app.cli.command("verify-ledger")
    @click.argument("product_id", type=int)
    def verify_ledger(product_id) -> None:
        """Report breaks in one product's opening/closing chain."""
        try:
            issues = ledger.verify_ledger(product_id)
        except InventoryError as exc:
            raise click.ClickException(exc.message) from exc
        if not issues:
            click.echo("Ledger OK.")
            return
        for issue in issues:
            label = issue.business_date.isoformat() if issue.business_date else "snapshot"
            click.echo(f"{label}: {issue.message}")
        raise SystemExit(1)
