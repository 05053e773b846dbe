"""
CLI interface for Feed Relay.

Starts the relay and inspects the delivery ledger.
"""

import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from feed_relay.config.loader import RelayConfig, load_relay_config
from feed_relay.core.commands import CommandDispatcher
from feed_relay.core.coordinator import EXIT_CODE_FAIL, EXIT_CODE_OK, BotCoordinator
from feed_relay.core.poller import FeedPoller
from feed_relay.core.session import ProtocolSession
from feed_relay.sources.timeline import TimelineClient
from feed_relay.storage.repository import DeliveryLedger, LedgerError

app = typer.Typer()
console = Console()

DEFAULT_CONFIG = "feed_relay.yaml"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load_config(path: str, env_file: Optional[str] = None) -> RelayConfig:
    try:
        return load_relay_config(path, env_file=env_file)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def build_coordinator(config: RelayConfig) -> BotCoordinator:
    """Assemble ledger, feed client, session, poller and dispatcher."""
    ledger = DeliveryLedger(config.ledger.path)
    ledger.initialize_schema()

    client = TimelineClient(
        bearer_token=config.feed.bearer_token,
        base_url=config.feed.base_url,
        timeout=config.feed.timeout_seconds
    )
    irc = config.irc
    session = ProtocolSession(
        server=irc.server,
        port=irc.port,
        channel=irc.channel,
        nick=irc.nick,
        realname=irc.realname,
        use_tls=irc.use_tls,
        join_delay=irc.join_delay,
        quit_timeout=irc.quit_timeout
    )
    poller = FeedPoller(
        identity=config.feed.identity,
        fetch_latest=client.fetch_latest,
        ledger=ledger,
        deliver=session.say_to_channel,
        interval=config.feed.interval_seconds,
        poll_on_start=config.feed.poll_on_start
    )
    dispatcher = CommandDispatcher(session, console=console)
    return BotCoordinator(session, poller, dispatcher)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Feed Relay CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Feed Relay - Use --help to see available commands")


@app.command()
def run(
    config_path: str = typer.Option(
        DEFAULT_CONFIG,
        "--config",
        "-c",
        help="Path to the relay YAML configuration"
    ),
    env_file: Optional[str] = typer.Option(
        None,
        "--env-file",
        help="Optional .env file holding FEED_BEARER_TOKEN"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every line sent and received"
    )
):
    """
    Connect to the chat server and start relaying.

    Type chat at the prompt, or /quit, /msg, /join, /raw.
    """
    _configure_logging(verbose)
    config = _load_config(config_path, env_file)
    try:
        coordinator = build_coordinator(config)
    except (LedgerError, ValueError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    coordinator.install_signal_handlers()
    sys.exit(coordinator.run())


@app.command()
def init(
    config_path: str = typer.Option(DEFAULT_CONFIG, "--config", "-c")
):
    """Initialize the delivery ledger database."""
    config = _load_config(config_path)
    try:
        DeliveryLedger(config.ledger.path).initialize_schema()
        console.print(f"[green]✓[/] Ledger initialized at {config.ledger.path}")
        sys.exit(EXIT_CODE_OK)
    except LedgerError as e:
        console.print(f"[red]Error initializing ledger:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(
    config_path: str = typer.Option(DEFAULT_CONFIG, "--config", "-c"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of recent items to show")
):
    """Show ledger counts and the most recently seen items."""
    config = _load_config(config_path)
    ledger = DeliveryLedger(config.ledger.path)
    try:
        ledger.initialize_schema()
        stats = ledger.stats()
        records = ledger.list_recent(limit)
    except LedgerError as e:
        console.print(f"[red]Error reading ledger:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Ledger[/bold] {config.ledger.path}")
    console.print(
        f"Seen: {stats.total}  Delivered: {stats.delivered}  Pending: {stats.pending}"
    )

    if not records:
        console.print("\n[dim]No items recorded yet.[/]")
        sys.exit(EXIT_CODE_OK)

    table = Table("Item", "Account", "Delivered", "First seen")
    for record in records:
        table.add_row(
            record.external_id,
            f"@{record.source_identity}",
            "yes" if record.delivered else "[yellow]no[/]",
            record.first_seen.strftime("%Y-%m-%d %H:%M:%S")
        )
    console.print(table)
    sys.exit(EXIT_CODE_OK)


if __name__ == "__main__":
    app()
