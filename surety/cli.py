from __future__ import annotations

import json
import logging
from typing import Optional

import click

from .config import get_settings
from .coordinator import Coordinator
from .errors import SuretyError
from .oracle_agent import OracleAgent, build_source
from . import reports

logger = logging.getLogger(__name__)


def _setup_logging(log_file: str) -> None:
    logging.basicConfig(
        level=logging.INFO,
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Flight surety ledger command line interface."""
    cfg = get_settings()
    _setup_logging(cfg.log_file)
    ctx.obj = Coordinator.from_settings(cfg)
    ctx.call_on_close(ctx.obj.ledger.close)


@cli.command()
@click.option("--flights", "flights_file", type=click.Path(exists=True), help="JSON file with flights to seed")
@click.pass_obj
def init(app: Coordinator, flights_file: Optional[str]) -> None:
    """Create the ledger and register the first airline."""
    receipt = app.bootstrap()
    if receipt.value:
        click.echo(f"Registered first airline {app.settings.first_airline}")
    if flights_file:
        _seed(app, flights_file)


def _seed(app: Coordinator, path: str) -> int:
    with open(path, "r", encoding="utf-8") as fh:
        flights = json.load(fh)
    seeded = 0
    for item in flights:
        try:
            app.register_flight(item["flight"], int(item["timestamp"]), item["airline"])
        except SuretyError as exc:
            logger.warning("  Skipping flight %s: %s", item.get("flight"), exc)
            continue
        seeded += 1
    click.echo(f"Seeded {seeded} flights")
    return seeded


@cli.command()
@click.argument("flights_file", type=click.Path(exists=True))
@click.pass_obj
def seed(app: Coordinator, flights_file: str) -> None:
    """Register the flights listed in FLIGHTS_FILE."""
    _seed(app, flights_file)


@cli.command("request-status")
@click.argument("airline")
@click.argument("flight")
@click.argument("timestamp", type=int)
@click.option("--caller", default=None, help="Requesting identity (defaults to the owner)")
@click.pass_obj
def request_status(app: Coordinator, airline: str, flight: str, timestamp: int, caller: Optional[str]) -> None:
    """Ask the oracle pool for the status of a flight."""
    receipt = app.fetch_flight_status(airline, flight, timestamp, caller or app.settings.owner)
    click.echo(f"OracleRequest opened on index {receipt.value}")


@cli.command()
@click.option("--once", is_flag=True, help="Answer pending requests and exit")
@click.option("--since", default=0, type=int, help="Event offset to start from")
@click.option("--seed", "rng_seed", default=None, type=int, help="Seed for simulated statuses")
@click.pass_obj
def oracles(app: Coordinator, once: bool, since: int, rng_seed: Optional[int]) -> None:
    """Run the simulated oracle pool."""
    cfg = app.settings
    agent = OracleAgent(app, build_source(cfg.status_source_url, rng_seed), offset=since)
    agent.register_oracles(cfg.oracle_count)
    if once:
        handled = agent.poll()
        click.echo(f"Handled {handled} requests")
        return
    from .tasks import build_scheduler

    build_scheduler(agent, cfg.oracle_poll_interval_s).start()


@cli.command()
@click.option("--passenger", default=None, help="Show the policies of one passenger")
@click.pass_obj
def report(app: Coordinator, passenger: Optional[str]) -> None:
    """Print outstanding payout exposure per flight."""
    if passenger:
        for item in reports.passenger_insurances(app, passenger):
            flight = item["flight"]
            click.echo(
                f"{flight.flight_code} {item['state']} "
                f"amount={item['amount']} payout={item['insuranceValue']} "
                f"status={flight.status_code.name}"
            )
        return
    df = reports.exposure_by_flight(app.ledger.db_path)
    if df.empty:
        click.echo("No outstanding policies")
    else:
        click.echo(df.to_string(index=False))


@cli.command()
@click.option("--since", default=0, type=int, help="Only events after this sequence number")
@click.option("--name", default=None, help="Only events with this name")
@click.pass_obj
def events(app: Coordinator, since: int, name: Optional[str]) -> None:
    """Dump the event log."""
    for ev in app.events_since(since, name):
        click.echo(f"{ev.seq}\t{ev.name}\t{ev.actor}\t{json.dumps(ev.args)}")


if __name__ == "__main__":
    cli()
