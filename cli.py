# Simple CLI for the agent state engine
import asyncio
import json
import sys
from pathlib import Path

import click

from app.containers import AppContainer
from app.main import main as run_app
from core.logging import configure_logging
from core.utils.exceptions import StateEngineException
from services.ledger.service import InMemoryLedgerRowSource


def _load_ledger_rows(path: Path) -> list:
    """Read a JSON array or JSON-lines ledger export."""
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return []
    if text.startswith("["):
        return json.loads(text)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def _fmt(value, digits: int = 4) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:,.{digits}f}"
    return str(value)


async def _with_connection(container: AppContainer, action):
    connection = container.connection_manager()
    container.inbound_dispatcher()
    await connection.connect()
    try:
        return await action()
    finally:
        await connection.close()


@click.group()
def cli():
    """Agent State Engine CLI"""
    pass


@cli.command()
def run():
    """Run the state engine until interrupted"""
    click.echo("🧭 Starting Agent State Engine...")
    asyncio.run(run_app())


@cli.command()
@click.option("--top", "top_k", type=click.IntRange(min=1), default=None, help="Number of assets to rank")
@click.option("--metric", type=click.Choice(["day_notional_volume", "open_interest", "percent_change", "funding_rate"]),
              default=None, help="Ranking metric")
def markets(top_k, metric):
    """Print a one-shot top-K market snapshot"""
    container = AppContainer()
    settings = container.settings()
    configure_logging(settings)
    if top_k is not None:
        settings.market_data.top_k = top_k
    if metric is not None:
        settings.market_data.rank_metric = metric

    try:
        tickers = asyncio.run(_with_connection(container, container.market_data_service().load))
    except StateEngineException as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)

    click.echo(f"{'#':>3} {'SYMBOL':<10} {'PRICE':>16} {'24H %':>9} {'DAY NTL VLM':>20} {'OPEN INT':>16}")
    for rank, t in enumerate(tickers, start=1):
        click.echo(f"{rank:>3} {t.symbol:<10} {_fmt(t.price):>16} {_fmt(t.percent_change, 2):>9} "
                   f"{_fmt(t.day_notional_volume, 0):>20} {_fmt(t.open_interest, 2):>16}")


@cli.command()
@click.argument("address")
def account(address):
    """Print a one-shot account snapshot"""
    container = AppContainer()
    configure_logging(container.settings())
    store = container.account_store()

    try:
        entry = asyncio.run(_with_connection(container, lambda: store.initialize(address)))
    except StateEngineException as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)

    if entry.error or entry.snapshot is None:
        click.echo(f"❌ {entry.error or 'No snapshot'}", err=True)
        sys.exit(1)

    snap = entry.snapshot
    click.echo(f"Account value:  {_fmt(snap.account_value, 2)}")
    click.echo(f"Open PnL:       {_fmt(snap.total_open_pnl, 2)}")
    click.echo(f"Notional:       {_fmt(snap.total_ntl_pos, 2)}")
    click.echo(f"Withdrawable:   {_fmt(snap.withdrawable, 2)}")
    for timeframe, pnl in snap.pnl_history.items():
        click.echo(f"  {timeframe:<12} pnl={_fmt(pnl.pnl, 2)} ({_fmt(pnl.pnl_pct, 2)}%)")
    for p in snap.positions:
        click.echo(f"  {p.symbol:<8} size={_fmt(p.size)} entry={_fmt(p.entry_price)} "
                   f"mark={_fmt(p.mark_price)} upnl={_fmt(p.unrealized_pnl, 2)} ({_fmt(p.live_pnl_pct, 2)}%)")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--status", type=click.Choice(["open", "closed", "all"]), default="all", show_default=True)
@click.option("--agent", "agent_id", default="", help="Only rows for this agent id")
def ledger(file, status, agent_id):
    """Reconstruct positions from a JSON/JSONL ledger export"""
    try:
        rows = _load_ledger_rows(file)
    except ValueError as e:
        click.echo(f"❌ Could not read ledger export: {e}", err=True)
        sys.exit(1)

    container = AppContainer()
    configure_logging(container.settings())
    container.ledger_row_source.override(InMemoryLedgerRowSource(rows))
    positions = asyncio.run(container.ledger_service().get_positions(agent_id, status=status))

    for p in positions:
        exit_part = f" exit={_fmt(p.exit_price)} pnl={_fmt(p.realized_pnl, 2)}" if p.status.value == "CLOSED" else ""
        click.echo(f"{p.id:<20} {p.asset or '-':<8} {p.side.value:<5} {p.status.value:<6} "
                   f"qty={_fmt(p.quantity)} entry={_fmt(p.entry_price)}{exit_part} {p.entry_timestamp}")
    click.echo(f"{len(positions)} position(s)")


if __name__ == "__main__":
    cli()
