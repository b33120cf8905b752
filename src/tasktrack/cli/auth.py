"""CLI: tasktrack auth login|register|status|logout"""

from typing import Optional

import click
from rich.console import Console

from tasktrack.errors import AuthError

console = Console()


def _make_client():
    from tasktrack.cli.main import _make_client
    return _make_client()


def _run(coro):
    from tasktrack.cli.main import _run
    return _run(coro)


@click.group()
def auth():
    """Authentication commands."""


@auth.command("login")
@click.option("--email", prompt=True)
@click.password_option(confirmation_prompt=False)
def auth_login(email: str, password: str):
    """Log in with email and password."""

    async def _login():
        client = _make_client()
        try:
            with console.status("Signing in..."):
                session = await client.sign_in(email, password)
        except AuthError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        console.print(f"[green]Logged in as {email.strip().lower()} (ID: {session.identity})[/green]")

    _run(_login())


@auth.command("register")
@click.option("--email", prompt=True)
@click.password_option()
@click.option("--name", default=None, help="Display name")
def auth_register(email: str, password: str, name: Optional[str]):
    """Create an account."""
    if len(password) < 6:
        raise click.BadParameter("password must be at least 6 characters", param_hint="password")

    async def _register():
        client = _make_client()
        try:
            with console.status("Creating account..."):
                result = await client.sign_up(email, password, name)
        except AuthError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        if result.get("access_token"):
            console.print("[green]Account created and logged in.[/green]")
        else:
            console.print("[yellow]Account created. Confirm your email, then run `tasktrack auth login`.[/yellow]")

    _run(_register())


@auth.command("status")
def auth_status():
    """Show current auth status (checked against the server)."""

    async def _status():
        client = _make_client()
        try:
            session = await client.restore_session()
        finally:
            await client.close()
        if session.authenticated:
            console.print(f"[green]Logged in[/green] (ID: {session.identity})")
        else:
            console.print("[yellow]Not logged in. Run `tasktrack auth login`.[/yellow]")

    _run(_status())


@auth.command("logout")
def auth_logout():
    """Sign out and forget the stored credential."""

    async def _logout():
        client = _make_client()
        try:
            await client.sign_out()
        finally:
            await client.close()
        console.print("[green]Logged out.[/green]")

    _run(_logout())
