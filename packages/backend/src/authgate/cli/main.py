"""authgate CLI — run the server and manage the user table.

Usage:
    authgate serve                                   # Run the API under uvicorn
    authgate init-db                                 # Create tables (idempotent)
    authgate create-user admin@example.com --admin   # Local user, prompts for password

create-user is the only way to get an `admin` role; neither registration
nor OAuth ever creates one.
"""

from __future__ import annotations

import asyncio
import sys

import click

from authgate.auth.errors import Conflict, ValidationFailed
from authgate.auth.password import HashingError, PasswordHasher
from authgate.config import settings
from authgate.db.models import Role


@click.group()
def cli():
    """authgate — identity and token service."""


@cli.command()
@click.option("--host", default=None, help="Bind address (default: AUTHGATE_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: AUTHGATE_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "authgate.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@cli.command("init-db")
def init_db():
    """Create the users and auth_providers tables."""
    from authgate.db.engine import build_engine, create_tables

    async def _run():
        engine = build_engine(settings.database_url)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    click.secho("Tables created.", fg="green")


@cli.command("create-user")
@click.argument("email")
@click.option("--name", default=None, help="Display name (default: email local part)")
@click.option("--admin", is_flag=True, help="Give the user the admin role")
@click.password_option(help="Password (prompted if omitted)")
def create_user(email: str, name: str | None, admin: bool, password: str):
    """Create a local user, optionally an admin."""
    from authgate.db.engine import build_engine, build_session_factory
    from authgate.db.store import SqlCredentialStore, StoreError
    from authgate.services.identity_resolver import IdentityResolver, Registration

    async def _run():
        engine = build_engine(settings.database_url)
        try:
            store = SqlCredentialStore(build_session_factory(engine))
            resolver = IdentityResolver(store, PasswordHasher(rounds=settings.bcrypt_rounds))
            return await resolver.register_local(
                Registration(
                    name=name or email.split("@")[0], email=email, password=password
                ),
                role=Role.ADMIN.value if admin else Role.USER.value,
            )
        finally:
            await engine.dispose()

    try:
        user = asyncio.run(_run())
    except (ValidationFailed, Conflict) as e:
        click.secho(f"Error: {e.public_message}", fg="red", err=True)
        sys.exit(1)
    except (StoreError, HashingError) as e:
        click.secho(f"Error: user not created ({e})", fg="red", err=True)
        sys.exit(1)
    click.secho(f"Created {user.role} {user.email} ({user.id})", fg="green")


def main():
    cli()


if __name__ == "__main__":
    main()
