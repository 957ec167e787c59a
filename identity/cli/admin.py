"""Admin CLI commands for operator-only account maintenance."""

import logging

import typer

from identity.core.clock import SystemClock
from identity.db.session import session_scope
from identity.services.tokens import purge_expired_tokens
from identity.services.users import block_user as block_user_record
from identity.services.users import get_user_by_email

logger = logging.getLogger(__name__)

app = typer.Typer(help="Identity service administration.")


@app.command("block-user")
def block_user(email: str):
    """Block a user by email and revoke every session and pending token."""
    with session_scope() as db:
        user = get_user_by_email(db, email)
        if not user:
            typer.echo(f"Error: User with email {email} not found.")
            raise typer.Exit(code=1)

        block_user_record(db, user, SystemClock().now())
        db.commit()
        typer.echo(f"User {user.email} blocked.")


@app.command("purge-expired-tokens")
def purge_tokens():
    """Delete expired activation, reset and email-change tokens."""
    with session_scope() as db:
        removed = purge_expired_tokens(db, SystemClock().now())
        db.commit()
    typer.echo(f"Removed {removed} expired token(s).")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app()
