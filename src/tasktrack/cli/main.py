"""
tasktrack CLI — `tasktrack` command.

Commands:
  tasktrack auth login|register|status|logout
  tasktrack tasks list|add|done|undo|edit|rm
"""

import asyncio
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from tasktrack.client import AsyncTaskTrack
from tasktrack.config import CONFIG_FILE, ConfigChannel, Settings

console = Console()


def _load_settings() -> Settings:
    return Settings.load(CONFIG_FILE)


def _make_client() -> AsyncTaskTrack:
    return AsyncTaskTrack(_load_settings(), channel=ConfigChannel(CONFIG_FILE))


async def _signed_in_client() -> AsyncTaskTrack:
    """Client with its stored session re-validated (and refreshed if needed)."""
    client = _make_client()
    session = await client.restore_session()
    if not session.authenticated:
        await client.close()
        console.print("[red]Not logged in. Run `tasktrack auth login` first.[/red]")
        raise SystemExit(1)
    return client


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log requests and cache activity.")
def main(verbose: bool):
    """tasktrack — personal task tracker."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s: %(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


# Register subcommands from separate modules
from tasktrack.cli.auth import auth  # noqa: E402
from tasktrack.cli.tasks import tasks  # noqa: E402

main.add_command(auth)
main.add_command(tasks)


if __name__ == "__main__":
    main()
