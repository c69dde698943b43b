"""Command-line interface for btc-broker.

Usage:
    btc-broker replay EVENTS [--config=PATH]
    btc-broker status [--config=PATH]
    btc-broker version

An events file is a YAML list, replayed in order:

    - purchase: {quantity: "0.5", rate: "20000"}
    - trend: {rate: "25000"}
    - trend: {rate: "26000", age_seconds: 600}
"""

import argparse
import asyncio
import logging
import os
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List

import yaml

from .config import Config, load_config
from .models.types import current_ts_ms, to_decimal
from .orchestrator import Orchestrator


def setup_logging(level: str = "INFO", log_file: str = None) -> None:
    """Configure logging."""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=handlers,
    )


EVENT_FIELDS = {
    # kind: (required fields, optional fields)
    "purchase": (("quantity", "rate"), ()),
    "trend": (("rate",), ("age_seconds",)),
}


def _parse_number(value, where: str) -> Decimal:
    try:
        number = to_decimal(value)
    except (TypeError, InvalidOperation):
        raise ValueError(f"{where} must be a number, got {value!r}")
    if not number.is_finite():
        raise ValueError(f"{where} must be finite, got {value!r}")
    return number


def load_events(events_path: str) -> List[dict]:
    """Read and validate a replay events file.

    Every payload value is converted to a Decimal.

    Raises:
        ValueError: An event is malformed or holds a non-numeric value.
    """
    with open(events_path, "r") as f:
        events = yaml.safe_load(f) or []

    if not isinstance(events, list):
        raise ValueError("Events file must contain a list")

    for i, event in enumerate(events):
        if not isinstance(event, dict) or len(event) != 1:
            raise ValueError(f"Event #{i} must have exactly one key")
        kind, payload = next(iter(event.items()))
        if kind not in EVENT_FIELDS:
            raise ValueError(f"Event #{i} has unknown type '{kind}'")
        if not isinstance(payload, dict):
            raise ValueError(f"Event #{i} ({kind}) must be a mapping")

        required, optional = EVENT_FIELDS[kind]
        missing = [name for name in required if name not in payload]
        if missing:
            raise ValueError(f"Event #{i} ({kind}) is missing {', '.join(missing)}")
        unknown = [name for name in payload if name not in required + optional]
        if unknown:
            raise ValueError(
                f"Event #{i} ({kind}) has unknown fields {', '.join(map(str, unknown))}"
            )

        event[kind] = {
            name: _parse_number(value, f"Event #{i} ({kind}) {name}")
            for name, value in payload.items()
        }
    return events


async def replay_events(config: Config, events: List[dict]) -> Orchestrator:
    """Feed events through a fresh orchestrator, one at a time."""
    orchestrator = Orchestrator(config)
    await orchestrator.start()

    try:
        for event in events:
            if "purchase" in event:
                data = event["purchase"]
                await orchestrator.record_purchase(data["quantity"], data["rate"])
            else:
                data = event["trend"]
                age_ms = int(data.get("age_seconds", 0) * 1000)
                await orchestrator.publish_trend(
                    data["rate"],
                    observed_at=current_ts_ms() - age_ms,
                )
            await orchestrator.flush()
    finally:
        await orchestrator.stop()

    return orchestrator


def cmd_replay(args: argparse.Namespace) -> int:
    """Replay an events file and print the resulting offers."""
    config = load_config(args.config)

    try:
        events = load_events(args.events)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: could not read events: {e}")
        return 1

    orchestrator = asyncio.run(replay_events(config, events))

    print(f"\nOffers ({len(orchestrator.state.offers)}):")
    for offer in orchestrator.state.offers:
        rates = ", ".join(str(p.rate) for p in offer.purchases)
        print(f"  {offer.id}  rate={offer.rate}  btc={offer.quantity}  purchases=[{rates}]")

    stats = orchestrator.get_stats()
    seller_stats = stats["seller_stats"]
    settlement_stats = stats["settlement_stats"]
    print("\nFinal Statistics:")
    print(f"  Purchases received: {seller_stats.get('purchases_received', 0)}")
    print(f"  Readings evaluated: {seller_stats.get('readings_evaluated', 0)}")
    print(f"  Stale readings: {seller_stats.get('stale_readings', 0)}")
    print(f"  Unsold purchases: {seller_stats.get('ledger_size', 0)}")
    print(f"  BTC sold: {settlement_stats.get('btc_sold', 0)}")
    print(f"  Realized profit: {settlement_stats.get('realized_profit', 0)}")

    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show the effective configuration."""
    print("BTC Broker Status")
    print("=" * 40)

    config = load_config(args.config)
    print(f"  Selling fee: {config.seller.fee()}")
    print(f"  Min margin: {config.seller.min_margin()}%")
    print(f"  Staleness threshold: {config.seller.staleness_seconds}s")
    print(f"  Inbound capacity: {config.seller.inbound_capacity or 'unbounded'}")
    print(f"  Outbound capacity: {config.seller.outbound_capacity or 'unbounded'}")
    print(f"  Paper fill tolerance: {config.paper.fill_tolerance()}%")

    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    from . import __version__
    print(f"btc-broker version {__version__}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="btc-broker",
        description="Decides which bitcoin purchases to sell for profit",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to config file",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Log level (default: LOG_LEVEL env var or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # replay command
    replay_parser = subparsers.add_parser("replay", help="Replay an events file")
    replay_parser.add_argument("events", help="Path to YAML events file")
    replay_parser.set_defaults(func=cmd_replay)

    # status command
    status_parser = subparsers.add_parser("status", help="Show configuration")
    status_parser.set_defaults(func=cmd_status)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.log_level, os.environ.get("LOG_FILE"))

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
