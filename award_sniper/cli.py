from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import click

from . import db
from .alert_engine import AlertEngine
from .config import Settings, get_settings
from .dispatch_queue import DispatchQueue
from .expander import SearchExpander
from .notifier import EchoNotifier, Notifier, TelegramNotifier
from .query import QueryParseError
from .search_runner import GENERIC_ERROR, SearchRunner
from .smiles_fetcher import SmilesFetcher
from .tasks import CronScheduler, build_scheduler

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    runner: SearchRunner
    queue: DispatchQueue
    notifier: Notifier


def build_runtime(settings: Settings, notifier: Optional[Notifier] = None) -> Runtime:
    """Wire fetcher, expander, queue and runner from *settings*."""
    if notifier is None:
        if settings.telegram_token:
            notifier = TelegramNotifier(settings.telegram_token)
        else:
            notifier = EchoNotifier(click.echo)
    fetcher = SmilesFetcher(settings)
    expander = SearchExpander(
        fetcher,
        default_max_results=settings.max_results,
        max_workers=settings.max_parallel_requests,
    )
    queue = DispatchQueue(
        cooldown=settings.queue_cooldown_s,
        tick_interval=settings.queue_tick_s,
        progress=notifier.send,
    )
    runner = SearchRunner(expander, settings.db_path, queue=queue)
    return Runtime(settings=settings, runner=runner, queue=queue, notifier=notifier)


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        handlers=[logging.FileHandler("award_sniper.log"), logging.StreamHandler()],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _engine(rt: Runtime, scheduler: Optional[CronScheduler] = None) -> AlertEngine:
    scheduler = scheduler or CronScheduler(timezone=rt.settings.timezone)
    return AlertEngine(rt.runner.search_text, rt.notifier, scheduler, rt.settings.db_path)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Award ticket search and price alerts."""
    _setup_logging()
    settings = get_settings()
    db.migrate(db_path=settings.db_path)
    ctx.obj = build_runtime(settings)


@cli.command()
@click.argument("query", nargs=-1, required=True)
@click.option("--user", "requester", default=None, help="Apply this user's preferences")
@click.pass_obj
def search(rt: Runtime, query: Tuple[str, ...], requester: Optional[str]) -> None:
    """Run one search right away, e.g. ``search EZE MAD 2024-10``."""
    text = " ".join(query)
    try:
        _, answer = rt.runner.search(text, requester)
    except QueryParseError as exc:
        raise click.BadParameter(str(exc), param_hint="QUERY") from exc
    click.echo(answer)


@cli.command()
@click.argument("queries", type=click.File("r"))
@click.option("--user", "requester", default=None)
@click.pass_obj
def batch(rt: Runtime, queries, requester: Optional[str]) -> None:
    """Run one search per line of QUERIES through the dispatch queue."""
    for text in (line.strip() for line in queries):
        if not text:
            continue
        ticket = rt.runner.submit(text, requester, "cli", rt.notifier, wants_progress=False)
        click.echo(f"{text}: position {ticket.position}, eta {int(ticket.eta_seconds)}s")
    try:
        while len(rt.queue) or rt.queue.busy:
            future = rt.queue.tick()
            if future is not None:
                future.result()
            else:
                time.sleep(rt.queue.tick_interval)
    finally:
        rt.queue.shutdown()


@cli.command()
@click.pass_obj
def serve(rt: Runtime) -> None:
    """Start the dispatch queue and every saved schedule; blocks."""
    scheduler = build_scheduler(rt.settings.timezone)
    rt.queue.start(scheduler)
    engine = _engine(rt, CronScheduler(scheduler))
    engine.load_all()
    # alert/cron commands run in their own process and only write the store
    engine.watch(scheduler, rt.settings.sync_interval_s)
    logger.info("Scheduler started")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
    finally:
        rt.queue.shutdown(wait=False)


# ────────────────────────────────────────────────────────────────
# Alerts / cron jobs
# ────────────────────────────────────────────────────────────────


@cli.group()
def alert() -> None:
    """Manage price alerts."""


@alert.command("add")
@click.argument("query", nargs=-1, required=True)
@click.option("--user", "requester", required=True)
@click.option("--chat", "chat_id", required=True)
@click.option("--cron", "cron", default="0 */6 * * *", show_default=True)
@click.pass_obj
def alert_add(rt: Runtime, query: Tuple[str, ...], requester: str, chat_id: str, cron: str) -> None:
    text = " ".join(query)
    try:
        created = _engine(rt).create_alert(requester, text, cron, chat_id)
    except (QueryParseError, ValueError) as exc:
        raise click.BadParameter(str(exc)) from exc
    except db.StoreError:
        logger.exception("Could not save alert %s", text)
        raise click.ClickException(GENERIC_ERROR)
    click.echo(f"Alert {created.id} saved: {text} ({cron})")


@alert.command("rm")
@click.argument("query", nargs=-1, required=True)
@click.option("--user", "requester", required=True)
@click.pass_obj
def alert_rm(rt: Runtime, query: Tuple[str, ...], requester: str) -> None:
    text = " ".join(query)
    if _engine(rt).delete_alert(requester, text):
        click.echo(f"Alert removed: {text}")
    else:
        click.echo(f"No alert for: {text}")


@alert.command("ls")
@click.option("--user", "requester", default=None)
@click.pass_obj
def alert_ls(rt: Runtime, requester: Optional[str]) -> None:
    for a in db.find_alerts(requester, db_path=rt.settings.db_path):
        click.echo(f"{a.id}\t{a.requester}\t{a.cron}\t{a.search}\t{a.updated_at or '-'}")


@cli.group()
def cron() -> None:
    """Manage periodic searches."""


@cron.command("add")
@click.argument("query", nargs=-1, required=True)
@click.option("--user", "requester", required=True)
@click.option("--chat", "chat_id", required=True)
@click.option("--cron", "expression", default="0 9 * * *", show_default=True)
@click.pass_obj
def cron_add(rt: Runtime, query: Tuple[str, ...], requester: str, chat_id: str, expression: str) -> None:
    text = " ".join(query)
    try:
        job = _engine(rt).create_cron_job(requester, text, expression, chat_id)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    click.echo(f"Cron job {job.id} saved: {text} ({expression})")


@cron.command("rm")
@click.argument("query", nargs=-1, required=True)
@click.option("--user", "requester", required=True)
@click.pass_obj
def cron_rm(rt: Runtime, query: Tuple[str, ...], requester: str) -> None:
    text = " ".join(query)
    if _engine(rt).delete_cron_job(requester, text):
        click.echo(f"Cron job removed: {text}")
    else:
        click.echo(f"No cron job for: {text}")


# ────────────────────────────────────────────────────────────────
# Users / reports
# ────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("requester")
@click.option("--max-results", type=int, default=None)
@click.option("--cabin", default=None)
@click.option("--max-stops", type=int, default=None)
@click.option("--max-hours", type=int, default=None)
@click.option("--exclude-airline", "airlines", multiple=True)
@click.option("--smiles-and-money/--smiles-only", default=None)
@click.option("--brasil-non-gol/--brasil-gol", default=None)
@click.pass_obj
def prefs(rt: Runtime, requester: str, max_results, cabin, max_stops, max_hours, airlines,
          smiles_and_money, brasil_non_gol) -> None:
    """Show or update the preferences of REQUESTER."""
    current = db.get_preferences(requester, db_path=rt.settings.db_path)
    if max_results is not None:
        current.max_results = max_results
    if cabin is not None:
        current.cabin_type = cabin.upper()
    if max_stops is not None:
        current.max_stops = max_stops
    if max_hours is not None:
        current.max_hours = max_hours
    if airlines:
        current.airlines = [a.upper() for a in airlines]
    if smiles_and_money is not None:
        current.smiles_and_money = smiles_and_money
    if brasil_non_gol is not None:
        current.brasil_non_gol = brasil_non_gol
    db.save_preferences(requester, current, db_path=rt.settings.db_path)
    click.echo(current.to_dict())


@cli.command()
@click.argument("requester")
@click.pass_obj
def reset(rt: Runtime, requester: str) -> None:
    """Forget preferences, alerts and cron jobs of REQUESTER."""
    _engine(rt).reset_user(requester)
    click.echo(f"Reset {requester}")


@cli.command()
@click.option("--days", type=int, default=30, show_default=True)
@click.pass_obj
def report(rt: Runtime, days: int) -> None:
    """Print the cheapest prices found per route."""
    from .aggregator import route_summary

    df = route_summary(rt.settings.db_path, days=days)
    if df.empty:
        click.echo("No searches recorded")
    else:
        click.echo(df.to_string(index=False))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
