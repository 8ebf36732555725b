# seed.py
"""Bootstrap an admin account.

Registers the account (or signs into it when it already exists) and promotes
it to admin. Safe to run repeatedly.

    python seed.py --admin-email root@example.com --admin-password s3cret!
"""

import logging
from pathlib import Path

import click

from db import default_engine
from models.user import UserRole
from services.coordinator import Request, build_coordinator
from services.sync import FileTokenStorage
from settings import configure_logging, load_settings

logger = logging.getLogger(__name__)


def ensure_admin(coordinator, email: str, password: str, name: str = "Administrator") -> dict:
    """Return ``{"user", "token"}`` for an admin account, promoting it if needed."""
    result = coordinator.execute(Request("auth.register", payload={"name": name, "email": email, "password": password}))
    if result.kind == "DuplicateEmail":
        logger.info("Account %s exists; signing in", email)
        result = coordinator.execute(Request("auth.login", payload={"email": email, "password": password}))
    if not result.ok:
        raise click.ClickException(f"Cannot sign in as {email}: {result.message}")
    user = result.data["user"]
    if user["role"] != UserRole.ADMIN.value:
        updated = coordinator.store.update_user(user["id"], {"role": UserRole.ADMIN.value})
        user = {**user, "role": updated.role}
        logger.info("Promoted user %s to admin", user["id"])
    return {"user": user, "token": result.data["token"]}


@click.command()
@click.option("--admin-email", required=True, help="Email of the admin account to create or promote")
@click.option("--admin-password", required=True, help="Its password (checked when the account exists)")
@click.option("--admin-name", default="Administrator", show_default=True)
@click.option("--token-file", type=click.Path(dir_okay=False, path_type=Path),
              help="Save the admin credential here for scripted clients")
def main(admin_email, admin_password, admin_name, token_file):
    """Create or promote the admin account on the configured database."""
    settings = load_settings()
    configure_logging(settings)
    coordinator = build_coordinator(default_engine(settings), settings)
    session = ensure_admin(coordinator, admin_email, admin_password, admin_name)
    click.echo(f"Admin ready: {session['user']['email']}")
    if token_file:
        FileTokenStorage(token_file).save(session["token"])
        click.echo(f"Credential saved to {token_file}")


if __name__ == "__main__":
    main()
