"""Typer CLI commands with Rich formatting."""

import asyncio
import json
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..core.config import NETWORKS, get_settings
from ..core.errors import Result
from ..core.types import DashboardSnapshot, HealthAlert, RefreshReport, ValidatorRecord
from ..services.dashboard import last_refresh_label
from ..services.health import health_band
from ..services.monitor import ValidatorMonitor

app = typer.Typer(
    name="validator-monitor",
    help="ETH Validator Monitor - Track your validators with data from Beaconcha.in",
)
settings_app = typer.Typer(help="Show or change notification, display and refresh preferences")
app.add_typer(settings_app, name="settings")
console = Console()
err_console = Console(stderr=True)

HEALTH_STYLES = {
    "excellent": "green",
    "good": "cyan",
    "warning": "yellow",
    "critical": "red bold",
}
STATUS_STYLES = {
    "active": "green",
    "pending": "yellow",
    "exited": "dim",
    "withdrawing": "yellow",
    "inactive": "dim",
}


def run_async(coro):
    """Helper to run async functions from sync CLI."""
    return asyncio.run(coro)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def fail(result: Result, as_json: bool = False) -> None:
    """Print a failed result and exit non-zero."""
    if as_json:
        print(json.dumps({"error": result.error, "kind": result.kind}, indent=2))
    else:
        console.print(f"[red]Error: {result.error}[/red]")
    raise typer.Exit(1)


def format_health(score: int) -> str:
    band = health_band(score)
    style = HEALTH_STYLES[band.key]
    return f"[{style}]{score} {band.label}[/{style}]"


def format_status(validator: ValidatorRecord) -> str:
    category = validator.status_category
    style = STATUS_STYLES[category]
    return f"[{style}]{category.capitalize()}[/{style}]"


def render_validators(validators: list[ValidatorRecord]) -> None:
    if not validators:
        console.print("[dim]No validators added yet. Use `validator-monitor add INDEX` to get started.[/dim]")
        return

    table = Table(title="Validators")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Index")
    table.add_column("Status")
    table.add_column("Balance", justify="right")
    table.add_column("Effectiveness", justify="right")
    table.add_column("Uptime", justify="right")
    table.add_column("Health", justify="right")

    for v in validators:
        table.add_row(
            str(v.id),
            v.name,
            f"#{v.index}",
            format_status(v),
            v.balance,
            v.effectiveness,
            v.uptime,
            format_health(v.health_score),
        )
    console.print(table)


def render_dashboard(snapshot: DashboardSnapshot, last_refresh: str | None = None) -> None:
    trend_styles = {"positive": "green", "negative": "red", "neutral": "dim"}

    def trend(t) -> str:
        style = trend_styles[t.direction]
        return f"[{style}]{t.text}[/{style}]"

    table = Table(title="Dashboard", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_column("Trend")
    table.add_row("Total Balance", f"{snapshot.total_balance:.2f} ETH", trend(snapshot.balance_trend))
    table.add_row("Active Validators", str(snapshot.active_count), trend(snapshot.active_trend))
    table.add_row(
        "Avg Effectiveness", f"{snapshot.avg_effectiveness:.1f}%", trend(snapshot.effectiveness_trend)
    )
    table.add_row("Avg Uptime", f"{snapshot.avg_uptime:.1f}%", trend(snapshot.uptime_trend))
    if snapshot.best_effectiveness is not None:
        table.add_row(
            "Best Validator", f"{snapshot.best_effectiveness:.1f}%", snapshot.best_validator_name or ""
        )
    console.print(table)
    if last_refresh:
        console.print(f"[dim]Last updated: {last_refresh}[/dim]")


def render_alert(alert: HealthAlert) -> None:
    console.print(
        Panel(
            f"[bold]{alert.name or alert.index}[/bold]\n"
            f"Health dropped from {alert.old_score} to {alert.new_score}\n"
            f"Status: {alert.band.label}",
            title="Validator Health Alert",
            border_style="red",
        )
    )


def render_report(report: RefreshReport) -> None:
    console.print(
        f"[bold]Refreshed {len(report.updated)}/{len(report.attempted)} validators[/bold]"
    )
    for failure in report.failures:
        console.print(f"[yellow]#{failure.index}: {failure.error}[/yellow]")
    if report.persistence_error:
        console.print(f"[red]Could not save: {report.persistence_error}[/red]")


@app.command()
def add(
    index: str = typer.Argument(..., help="Validator index or public key"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name"),
):
    """
    Track a validator. Its stats are fetched before it is added.

    Examples:
        validator-monitor add 123456
        validator-monitor add 0xa1b2... --name "Home staker"
    """

    async def _run():
        async with ValidatorMonitor() as monitor:
            return await monitor.add_validator(index, name)

    with console.status("[bold blue]Fetching validator stats..."):
        result = run_async(_run())

    if not result.success and result.data is None:
        fail(result)
    if not result.success:
        console.print(f"[yellow]Added, but could not save: {result.error}[/yellow]")
    render_validators([result.data])


@app.command(name="list")
def list_validators(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List tracked validators with their last known stats."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            return await monitor.load()

    result = run_async(_run())
    if not result.success:
        fail(result, output_json)

    if output_json:
        print(json.dumps([v.to_storage() for v in result.data], indent=2))
        return
    render_validators(result.data)


@app.command()
def show(
    validator_id: int = typer.Argument(..., help="Validator ID (see `list`)"),
    detailed: bool = typer.Option(
        False, "--detailed", "-d", help="Include income, attestations and proposals"
    ),
):
    """Show one validator's details."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            record = monitor.state.find(validator_id)
            if record is None or not detailed:
                return record, None, None, None
            return (
                record,
                await monitor.get_income(validator_id),
                await monitor.get_attestations(validator_id),
                await monitor.get_proposals(validator_id),
            )

    with console.status("[bold blue]Loading validator..."):
        record, income, attestations, proposals = run_async(_run())

    if record is None:
        console.print(f"[red]No validator with id {validator_id}[/red]")
        raise typer.Exit(1)

    band = health_band(record.health_score)
    console.print(
        Panel(
            f"[bold]{record.name}[/bold]  #{record.index}\n\n"
            f"Health: {format_health(record.health_score)}\n"
            f"Status: {format_status(record)} ({record.status})\n"
            f"Balance: {record.balance}\n"
            f"Effectiveness: {record.effectiveness}\n"
            f"Uptime: {record.uptime}\n"
            f"Attestations: {record.attestations}\n"
            f"Proposals: {record.proposals}",
            title="Validator Details",
            border_style=HEALTH_STYLES[band.key].split()[0],
        )
    )

    if not detailed:
        return

    if income.success:
        inc = income.data
        table = Table(title="Income & Rewards", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green", justify="right")
        table.add_row("Total Income", f"{inc.total} ETH")
        table.add_row("From Attestations", f"{inc.attestations} ETH")
        table.add_row("From Proposals", f"{inc.proposals} ETH")
        table.add_row("Sync Committee", f"{inc.sync_committee} ETH")
        console.print(table)
        if inc.note:
            console.print(f"[dim]{inc.note}[/dim]")
    else:
        console.print(f"[dim]Unable to fetch income data: {income.error}[/dim]")

    if attestations.success:
        att = attestations.data
        table = Table(title="Attestation Performance", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Miss Rate", f"{att.miss_rate}% ({att.status})")
        table.add_row("Successful / Missed", f"{att.successful} / [red]{att.missed}[/red]")
        table.add_row("Total Attestations", str(att.total))
        table.add_row("Last Missed", att.last_missed)
        console.print(table)
    else:
        console.print(f"[dim]Unable to fetch attestation data: {attestations.error}[/dim]")

    if proposals.success:
        prop = proposals.data
        table = Table(title="Block Proposals & Rewards")
        table.add_column("Slot", style="cyan")
        table.add_column("Epoch")
        table.add_column("Status")
        table.add_column("Reward", justify="right", style="green")
        for p in prop.proposals:
            table.add_row(str(p.slot or ""), str(p.epoch or ""), p.status, f"+{p.reward} ETH")
        console.print(table)
        console.print(
            f"Total: {prop.total} proposals, {prop.total_rewards} ETH "
            f"(avg {prop.avg_reward} ETH), last: {prop.last_proposal}"
        )
    else:
        console.print(f"[dim]Unable to fetch proposal data: {proposals.error}[/dim]")


@app.command()
def rename(
    validator_id: int = typer.Argument(..., help="Validator ID (see `list`)"),
    name: str = typer.Argument(..., help="New display name"),
):
    """Change a validator's display name."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            return await monitor.rename_validator(validator_id, name)

    result = run_async(_run())
    if not result.success:
        fail(result)
    console.print(f"[green]Renamed to {result.data.name}[/green]")


@app.command()
def remove(
    validator_id: int = typer.Argument(..., help="Validator ID (see `list`)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Stop tracking a validator."""

    async def _find():
        async with ValidatorMonitor() as monitor:
            return monitor.state.find(validator_id)

    async def _remove():
        async with ValidatorMonitor() as monitor:
            return await monitor.remove_validator(validator_id)

    record = run_async(_find())
    if record is None:
        console.print(f"[red]No validator with id {validator_id}[/red]")
        raise typer.Exit(1)

    if not yes and not typer.confirm(f'Remove validator "{record.name}" (#{record.index})?'):
        raise typer.Abort()

    result = run_async(_remove())
    if not result.success:
        fail(result)
    console.print(f"[green]Removed {record.name}[/green]")


@app.command()
def refresh():
    """Fetch fresh stats for every tracked validator once."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            monitor.add_alert_sink(render_alert)
            report = await monitor.refresh_all()
            return report, monitor.validators, monitor.dashboard()

    with console.status("[bold blue]Refreshing validators..."):
        report, validators, snapshot = run_async(_run())

    render_report(report)
    render_validators(validators)
    render_dashboard(snapshot)


@app.command()
def dashboard(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show fleet-wide totals from the saved validator set."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            return monitor.dashboard()

    snapshot = run_async(_run())
    if output_json:
        print(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return
    render_dashboard(snapshot)


@app.command()
def watch(
    interval: Optional[int] = typer.Option(
        None, "--interval", "-i", help="Refresh interval in seconds (default: saved setting)"
    ),
):
    """
    Continuously refresh validators with live updates.
    Press Ctrl+C to stop.
    """

    async def _run():
        async with ValidatorMonitor() as monitor:
            monitor.add_alert_sink(render_alert)

            def on_cycle(report: RefreshReport) -> None:
                console.clear()
                render_report(report)
                render_validators(monitor.validators)
                render_dashboard(monitor.dashboard(), last_refresh_label(monitor.state.last_refresh))

            monitor.scheduler.add_cycle_listener(on_cycle)
            render_validators(monitor.validators)
            render_dashboard(monitor.dashboard())

            interval_ms = interval * 1000 if interval else None
            monitor.start(interval_ms)
            console.print(
                f"\n[dim]Refreshing every {monitor.scheduler.interval_ms // 1000} seconds... "
                f"Press Ctrl+C to stop[/dim]"
            )
            await asyncio.Event().wait()

    try:
        run_async(_run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")


@app.command()
def network(
    name: Optional[str] = typer.Argument(None, help=f"One of: {', '.join(NETWORKS)}"),
):
    """Show or switch the active network."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            if name is None:
                return monitor.state.network, None
            return name, await monitor.set_network(name)

    current, result = run_async(_run())
    if result is not None and not result.success:
        fail(result)
    if result is None:
        console.print(f"Current network: [bold]{current}[/bold]")
    else:
        console.print(f"[green]Switched to {current} ({len(result.data)} validators)[/green]")


@settings_app.command("show")
def settings_show(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show the saved preferences."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            return monitor.state.settings, monitor.state.network

    app_settings, current_network = run_async(_run())
    if output_json:
        print(json.dumps(app_settings.model_dump(), indent=2))
        return

    n = app_settings.notifications
    table = Table(title="Settings", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Network", current_network)
    table.add_row("API key", "set" if app_settings.api_key else "[dim]free tier[/dim]")
    table.add_row("Refresh interval", f"{app_settings.refresh_interval // 1000}s")
    table.add_row("Health drop alerts", f"{n.health_drop} (below {n.health_threshold})")
    table.add_row("Offline alerts", str(n.offline))
    table.add_row("Proposal alerts", str(n.proposal))
    table.add_row("Miss rate alerts", f"{n.miss_rate} (above {n.miss_rate_threshold}%)")
    table.add_row("Balance drop alerts", str(n.balance_drop))
    table.add_row("Detailed stats", str(app_settings.display.detailed_stats))
    table.add_row("Compact mode", str(app_settings.display.compact_mode))
    table.add_row("Theme", app_settings.display.theme)
    console.print(table)


@settings_app.command("set")
def settings_set(
    refresh_interval: Optional[int] = typer.Option(None, help="Refresh interval in seconds"),
    health_threshold: Optional[int] = typer.Option(None, min=0, max=100, help="Health alert threshold"),
    health_drop: Optional[bool] = typer.Option(None, help="Alert on health drops"),
    miss_rate_threshold: Optional[float] = typer.Option(None, min=0, help="Miss rate alert threshold (%)"),
    api_key: Optional[str] = typer.Option(None, help="Beaconcha.in API key ('' to clear)"),
    theme: Optional[str] = typer.Option(None, help="dark or light"),
):
    """Change preferences and save them."""

    async def _run():
        async with ValidatorMonitor() as monitor:
            updated = monitor.state.settings.model_copy(deep=True)
            if refresh_interval is not None:
                updated.refresh_interval = refresh_interval * 1000
            if health_threshold is not None:
                updated.notifications.health_threshold = health_threshold
            if health_drop is not None:
                updated.notifications.health_drop = health_drop
            if miss_rate_threshold is not None:
                updated.notifications.miss_rate_threshold = miss_rate_threshold
            if api_key is not None:
                updated.api_key = api_key.strip()
            if theme is not None:
                updated.display.theme = theme
            return await monitor.save_settings(type(updated).model_validate(updated.model_dump()))

    try:
        result = run_async(_run())
    except ValueError as e:
        console.print(f"[red]Invalid setting: {e}[/red]")
        raise typer.Exit(1)
    if not result.success:
        fail(result)
    console.print("[green]Settings saved successfully![/green]")


@settings_app.command("reset")
def settings_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Reset all preferences to defaults and clear the API key."""
    if not yes and not typer.confirm("Reset all settings to defaults?"):
        raise typer.Abort()

    async def _run():
        async with ValidatorMonitor() as monitor:
            return await monitor.reset_settings()

    result = run_async(_run())
    if not result.success:
        fail(result)
    console.print("[green]Settings reset to defaults[/green]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
):
    """Run the JSON API with auto-refresh."""
    import uvicorn

    from ..web.app import create_app

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    app()
