"""
Command-line interface for DocketCC.

Provides commands for running the monitoring pipeline, delivering digests,
managing subscriptions, and inspecting system health.
"""

import asyncio
import json
import logging
import sys

import click
from dotenv import load_dotenv
from tqdm import tqdm

# Load environment variables from .env file (if it exists)
load_dotenv()

from . import __version__
from .config import config
from .exceptions import InvalidDocketError, SubscriptionLimitError
from .monitoring import collect_stats
from .services import get_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)

HEALTH_COLORS = {"healthy": "green", "warning": "yellow", "slow": "yellow", "error": "red"}


def setup_file_logging() -> None:
    """Set up file logging if enabled."""
    if config.get("logging.file_enabled", True):
        log_file = config.logs_dir / "docketcc.log"
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(config.get("logging.format")))
        logging.getLogger().addHandler(file_handler)


@click.group()
@click.version_option(version=__version__, prog_name="docketcc")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """DocketCC - Monitor FCC dockets and email filing digests."""
    logging.getLogger().setLevel(logging.DEBUG if verbose else config.get("logging.level", "INFO"))
    setup_file_logging()


@cli.command("init-db")
def init_db() -> None:
    """Create the database schema and rebuild the docket registry."""
    services = get_services()
    registered = services.registry.initialize_from_subscriptions()
    click.echo(click.style(f"Database ready: {services.db.db_path}", fg="green"))
    click.echo(f"Dockets registered from subscriptions: {registered}")


@cli.command()
@click.option("--force", is_flag=True, help="Run even during quiet hours")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
def run(force: bool, as_json: bool) -> None:
    """Run one monitoring cycle."""
    result = get_services().pipeline.run(force=force)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(click.style(str(result), fg="green" if not result.errors else "yellow"))
    if result.skipped:
        return

    for outcome in result.dockets:
        status = click.style("ERROR", fg="red") if outcome.error else click.style("ok", fg="green")
        click.echo(
            f"  {outcome.docket_number:<8} {status:<15} fetched={outcome.fetched} "
            f"stored={outcome.stored} queued={outcome.queued}"
        )
        if outcome.error:
            click.echo(f"           {outcome.error}")

    if result.seeds_queued or result.reconciled:
        click.echo(f"Seed digests queued: {result.seeds_queued}, reconciled: {result.reconciled}")


@cli.command()
@click.option("-l", "--limit", default=100, type=int, help="Maximum queue rows to claim")
def deliver(limit: int) -> None:
    """Send due notification digests."""
    result = get_services().delivery.run(limit=limit)

    click.echo(click.style(str(result), fg="green" if result.failed == 0 else "yellow"))
    for error in result.errors[:5]:
        click.echo(f"  - {error}")
    if len(result.errors) > 5:
        click.echo(f"  ... and {len(result.errors) - 5} more errors")


@cli.command()
@click.argument("docket_number")
def trigger(docket_number: str) -> None:
    """Check a single docket for new filings now."""
    try:
        outcome = get_services().pipeline.trigger_docket(docket_number)
    except InvalidDocketError as e:
        click.echo(click.style(str(e), fg="red"))
        sys.exit(1)

    if outcome.error:
        click.echo(click.style(f"Check failed for {outcome.docket_number}: {outcome.error}", fg="red"))
        sys.exit(1)

    click.echo(
        click.style(
            f"{outcome.docket_number}: {outcome.stored} new filings, {outcome.queued} notifications queued",
            fg="green",
        )
    )


@cli.command()
@click.argument("email")
@click.argument("docket_number")
@click.option(
    "-f",
    "--frequency",
    type=click.Choice(["daily", "weekly", "immediate"]),
    default="daily",
    help="Digest frequency",
)
@click.option("--no-seed", is_flag=True, help="Don't queue the catch-up digest")
def subscribe(email: str, docket_number: str, frequency: str, no_seed: bool) -> None:
    """Subscribe EMAIL to DOCKET_NUMBER."""
    services = get_services()
    try:
        result = services.subscriptions.subscribe(email, docket_number, frequency)
    except (InvalidDocketError, ValueError, SubscriptionLimitError) as e:
        click.echo(click.style(str(e), fg="red"))
        sys.exit(1)

    if not result.created:
        click.echo(f"Already subscribed; frequency set to {frequency}")
        return

    click.echo(click.style(f"Subscribed {result.user['email']} to {docket_number} ({frequency})", fg="green"))
    if result.replaced:
        click.echo(click.style(f"Replaced: {', '.join(result.replaced)} (free tier allows one docket)", fg="yellow"))

    if not no_seed:
        queue_id = services.seeds.seed_after_subscribe(result)
        if queue_id:
            click.echo(f"Seed digest queued (#{queue_id})")
        else:
            click.echo("No filings found yet; seed digest will be retried on the next run")


@cli.command()
@click.argument("email")
@click.argument("docket_number")
def unsubscribe(email: str, docket_number: str) -> None:
    """Remove EMAIL's subscription to DOCKET_NUMBER."""
    if get_services().subscriptions.unsubscribe(email, docket_number.strip()):
        click.echo(click.style(f"Unsubscribed {email} from {docket_number}", fg="green"))
    else:
        click.echo(click.style("Subscription not found", fg="yellow"))


@cli.command()
def dockets() -> None:
    """List monitored dockets with their health."""
    rows = get_services().registry.list_with_health()
    if not rows:
        click.echo("No dockets registered.")
        return

    click.echo(f"\n{'Docket':<10} {'Health':<9} {'Status':<9} {'Subs':>4} {'Errors':>6}  Last checked")
    click.echo("-" * 70)
    for row in rows:
        health = click.style(f"{row['health']:<9}", fg=HEALTH_COLORS.get(row["health"], "white"))
        click.echo(
            f"{row['docket_number']:<10} {health} {row['status']:<9} "
            f"{row['subscriber_count']:>4} {row['error_count']:>6}  {row['last_checked'] or 'never'}"
        )
        if row.get("last_error"):
            click.echo(f"{'':<10} last error: {row['last_error'][:80]}")


@cli.command()
def stats() -> None:
    """Show pipeline statistics."""
    services = get_services()
    stats = collect_stats(
        services.registry, services.filing_store, services.queue, services.users, services.subscriptions
    )

    click.echo(click.style("\nDocketCC Statistics", fg="bright_white", bold=True))
    click.echo("=" * 40)
    click.echo(f"Dockets:            {stats['dockets']['total']}")
    click.echo(f"Filings:            {stats['filings']['total']}")
    click.echo(f"  last 24h:         {stats['filings']['recent_24h']}")
    click.echo(f"  last 7 days:      {stats['filings']['recent_7d']}")
    click.echo(f"Users:              {stats['users']['total']}")
    click.echo(f"Subscriptions:      {stats['subscriptions']['total']}")

    if stats["filings"].get("by_status"):
        click.echo("\nFilings by status:")
        for status, count in sorted(stats["filings"]["by_status"].items()):
            click.echo(f"  {status}: {count}")

    click.echo(f"\nNotification queue (pending: {stats['queue']['pending_total']}), last 24h:")
    for row in stats["queue"]["breakdown"]:
        click.echo(f"  {row['status']:<8} {row['digest_type']:<14} {row['count']}")

    if stats["users"].get("by_tier"):
        click.echo("\nUsers by tier:")
        for tier, count in sorted(stats["users"]["by_tier"].items()):
            click.echo(f"  {tier}: {count}")


@cli.command("enrich-pending")
@click.option("-l", "--limit", default=10, type=int, help="Maximum filings to enrich")
def enrich_pending(limit: int) -> None:
    """Retry AI enrichment for filings still pending."""
    services = get_services()
    if services.enricher is None:
        click.echo(click.style("Enrichment is disabled in config", fg="yellow"))
        return

    filings = services.filing_store.get_pending_for_processing(limit)
    if not filings:
        click.echo("No filings pending enrichment.")
        return

    completed = failed = 0
    for filing in tqdm(filings, desc="Enriching"):
        if services.enricher.enrich_and_store(filing):
            completed += 1
        else:
            failed += 1

    click.echo(click.style(f"\nEnriched {completed} filings, {failed} failed", fg="green" if not failed else "yellow"))


@cli.command()
@click.option("--hours", default=24, type=int, help="Look back this many hours")
def reconcile(hours: int) -> None:
    """Queue notifications for processed filings that never reached the queue."""
    queued = get_services().dispatcher.reconcile(since_hours=hours)
    click.echo(click.style(f"Queued {queued} missing notifications", fg="green"))


@cli.command()
def health() -> None:
    """Check database, ECFS API and pipeline activity."""
    report = get_services().health.check()

    click.echo(f"Overall: {click.style(report['status'], fg=HEALTH_COLORS.get(report['status'], 'white'))}")
    for name, component in report["components"].items():
        status = click.style(component["status"], fg=HEALTH_COLORS.get(component["status"], "white"))
        extra = component.get("message") or (
            f"{component['latency_ms']} ms" if "latency_ms" in component else ""
        )
        click.echo(f"  {name:<10} {status} {extra}")

    if report["status"] == "error":
        sys.exit(1)


@cli.command()
def cleanup() -> None:
    """Expire trials and prune old logs and filings."""
    services = get_services()
    expired = services.users.handle_trial_expirations()
    logs = services.system_log.cleanup_old_logs(config.get("retention.logs_days", 30))
    filings = services.filing_store.cleanup_old(config.get("retention.filings_days", 365))
    click.echo(f"Trials expired: {expired}")
    click.echo(f"Log entries removed: {logs}")
    click.echo(f"Filings removed: {filings}")


@cli.command()
def backup() -> None:
    """Create a backup of the database."""
    click.echo("Creating database backup...")
    backup_path = get_services().db.backup(config.backups_dir)
    click.echo(click.style(f"Backup created: {backup_path}", fg="green"))


@cli.command()
def serve() -> None:
    """Run the job scheduler in the foreground (no web server)."""
    from .scheduler.setup import create_scheduler

    async def _serve() -> None:
        scheduler = create_scheduler(config)
        scheduler.start()
        click.echo(click.style(f"Scheduler running with {len(scheduler.get_jobs())} jobs", fg="green"))
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        click.echo("\nScheduler stopped")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind")
@click.option("--port", default=8000, type=int, help="Port to bind")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def web(host: str, port: int, reload: bool) -> None:
    """Start the web API."""
    try:
        import uvicorn
    except ImportError as err:
        click.echo(
            click.style(
                "Web dependencies not installed. Run: pip install -e '.[web]'",
                fg="red",
            )
        )
        raise SystemExit(1) from err

    click.echo(click.style(f"Starting web server at http://{host}:{port}", fg="green"))
    uvicorn.run("docketcc.web.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    cli()
