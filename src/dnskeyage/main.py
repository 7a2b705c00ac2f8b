from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Any, Dict, List, Optional

from .config.config_parser import ConfigError, RunConfig, load_run_config
from .config.logging_config import init_logging
from .resolver import DnskeyResolver
from .runner import run_zones
from .stores.base import BaseHistoryStore
from .stores.influxdb import InfluxHistoryStore

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_ZONE_FAILURES = 2


class _DryRunStore(BaseHistoryStore):
    """Store used when dry-running without Influx settings: no history, no writes."""

    def query_first_seen(self, zone: str) -> List[Any]:  # type: ignore[override]
        return []


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dnskeyage",
        description="Record the age of every published DNSKEY of the given zones",
    )
    parser.add_argument("--conf", help="Filename to read configuration from")
    parser.add_argument(
        "--dryrun",
        action="store_true",
        help="Nothing will be written to InfluxDB",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print lots of runtime information",
    )
    parser.add_argument(
        "--zone",
        dest="zones",
        action="append",
        default=[],
        help="Zone to compute DNSKEY age for (repeatable)",
    )
    parser.add_argument(
        "--resolver",
        dest="resolvers",
        action="append",
        default=[],
        help="Resolver name or IP, in priority order (repeatable)",
    )
    parser.add_argument("--port", type=int, help="Resolver port (default 53)")
    parser.add_argument(
        "--workers", type=int, help="Zones processed in parallel (default 1)"
    )
    parser.add_argument("--influx-server", help="Server with InfluxDB running")
    parser.add_argument("--influx-db", help="Name of InfluxDB database")
    parser.add_argument("--influx-user", help="Name of InfluxDB user")
    parser.add_argument("--influx-passwd", help="InfluxDB user password")
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "zones": args.zones,
        "resolvers": args.resolvers,
        "port": args.port,
        "workers": args.workers,
        "dryrun": args.dryrun,
        "verbose": args.verbose,
        "influx": {
            "server": args.influx_server,
            "database": args.influx_db,
            "user": args.influx_user,
            "password": args.influx_passwd,
        },
    }


def build_store(config: RunConfig) -> BaseHistoryStore:
    """Brief: Create the history store for a run.

    Inputs:
      - config: RunConfig.

    Outputs:
      - InfluxHistoryStore, or an empty stand-in when a dry run has no Influx
        server configured (every key then reports age 0).
    """

    if config.dryrun and not config.influx.server:
        return _DryRunStore()
    return InfluxHistoryStore.from_config(config.influx)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for dnskeyage.
    Parses arguments, loads configuration and runs the age pipeline once for
    every configured zone.

    Args:
        argv: Command-line arguments.

    Returns:
        0 when every zone finished, 1 for configuration errors, 2 when at
        least one zone failed.

    Example use:
        CLI:
            dnskeyage --zone example.com --resolver 9.9.9.9 --dryrun -v
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_run_config(args.conf, _overrides(args))
    except ConfigError as exc:
        print(str(exc))
        parser.print_usage()
        return EXIT_CONFIG

    init_logging(config.log_config, verbose=config.verbose)
    logger = logging.getLogger("dnskeyage.main")
    logger.debug(
        "Zones %s via resolvers %s port %d",
        list(config.zones),
        list(config.resolvers),
        config.port,
    )

    stop_event = threading.Event()

    def _request_stop(signum, _frame) -> None:
        logger.warning("Received signal %d; skipping remaining zones", signum)
        stop_event.set()

    previous = {}
    if threading.current_thread() is threading.main_thread():
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _request_stop)

    resolver = DnskeyResolver(
        config.resolvers, port=config.port, timeout_ms=config.timeout_ms
    )
    store = build_store(config)
    try:
        results = run_zones(config, resolver, store, stop_event)
    finally:
        store.close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    failed = [r for r in results if not r.ok]
    for r in failed:
        logger.warning("Zone %s: %s %s", r.zone, r.status, r.error or "")
    logger.info("Processed %d zones, %d failed", len(results), len(failed))
    return EXIT_ZONE_FAILURES if failed else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
