"""Polymarket trigger — run with: python3 -m polywatch [--once]"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from polyconnect.auth import RequestAuthenticator
from polyconnect.credentials import Credentials
from polyconnect.errors import PolymarketError
from polyconnect.signer import Signer

from .config import TRIGGER_KINDS, TRIGGER_ORDER_FILLED, TriggerConfig
from .detectors import build_detector
from .engine import PollEngine
from .source import SnapshotSource


def _setup_logging(level: str = "INFO", json_log: bool = False) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_log:
        fmt = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","module":"%(name)s","msg":"%(message)s"}'
        )
    else:
        fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    handler.setFormatter(fmt)
    root.addHandler(handler)


def _print_events(events) -> None:
    for event in events:
        print(json.dumps(event.to_dict(), default=str), flush=True)


def _build_source(config: TriggerConfig) -> SnapshotSource:
    authenticator = None
    if config.trigger_on == TRIGGER_ORDER_FILLED:
        creds = Credentials.from_env()
        authenticator = RequestAuthenticator(Signer(creds.private_key), creds)
    return SnapshotSource(authenticator=authenticator, timeout=config.request_timeout)


async def _run(config: TriggerConfig, once: bool) -> None:
    logger = logging.getLogger(__name__)
    detector = build_detector(config)
    async with _build_source(config) as source:
        engine = PollEngine(
            detector,
            source,
            _print_events,
            interval_seconds=config.poll_interval_seconds,
            include_details=config.include_market_details,
            manual=once,
        )
        if once:
            # A single manual poll only seeds the state; a second one compares.
            await engine.poll_once()
            await engine.poll_once()
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, engine.close)
            except NotImplementedError:
                logger.debug("Signal handlers not supported on this platform")
        await engine.run()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="python3 -m polywatch",
        description="Poll Polymarket and print an event when something changes",
    )
    parser.add_argument("--trigger", choices=TRIGGER_KINDS, help="What to watch")
    parser.add_argument("--market-id", help="Market for priceChange / marketResolution")
    parser.add_argument("--threshold", type=float, help="Price change in percent")
    parser.add_argument("--interval", type=float, metavar="MINUTES", help="Poll interval")
    parser.add_argument("--min-volume", type=float, help="newMarket volume filter")
    parser.add_argument("--details", dest="details", action="store_true", default=None,
                        help="Attach full market records to events")
    parser.add_argument("--no-details", dest="details", action="store_false")
    parser.add_argument("--once", action="store_true",
                        help="Seed, poll once more, print events and exit (errors exit 1)")
    parser.add_argument(
        "--set", action="append", metavar="KEY=VALUE",
        help="Override config value (e.g. --set market_limit=200)",
    )
    parser.add_argument("--verbose", action="store_true", help="DEBUG logging")
    parser.add_argument("--json-log", action="store_true", help="Structured JSON logs")

    args = parser.parse_args()
    config_dir = str(Path.cwd())
    config = TriggerConfig.load(config_dir)

    log_level = "DEBUG" if args.verbose else config.log_level
    _setup_logging(level=log_level, json_log=args.json_log)
    logger = logging.getLogger(__name__)

    overrides = {
        "trigger_on": args.trigger,
        "market_id": args.market_id,
        "price_threshold": args.threshold,
        "poll_interval_minutes": args.interval,
        "min_volume": args.min_volume,
        "include_market_details": args.details,
    }
    if args.set:
        for item in args.set:
            if "=" in item:
                k, v = item.split("=", 1)
                overrides[k] = v
    try:
        config.update({k: v for k, v in overrides.items() if v is not None})
        config.validate()
    except PolymarketError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    try:
        asyncio.run(_run(config, args.once))
    except PolymarketError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
