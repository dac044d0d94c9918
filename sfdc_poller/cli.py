"""Command-line entry point for the Salesforce poller.

Usage:
    sfdc-poller run --config config/salesforce.yaml [--output events.jsonl]
    sfdc-poller query --config config/salesforce.yaml
    sfdc-poller test-connection --config config/salesforce.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from typing import Any

from . import __version__
from . import config as settings
from .connectors import (
    ConfigValidationError,
    ConnectorError,
    ExtractionConfig,
    SalesforceConnector,
    load_config,
)
from .etl import ExtractionCycle, JSONLinesSink
from .scheduler import PollScheduler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def configure_logging(level: str) -> None:
    """Configure root logging; events go to stdout, logs to stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # httpx logs full request URLs at INFO, including SOQL
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_connector(config: ExtractionConfig) -> SalesforceConnector:
    """Create the Salesforce connector for a configuration."""
    source = config.sfdc_object_name or ",".join(config.object_names) or "soql"
    return SalesforceConnector(
        connector_id=f"sfdc-{source}",
        name=f"Salesforce {source}",
        config=config.client_options(),
    )


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set the stop event on SIGINT/SIGTERM."""

    def handle(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, stopping after current cycle")
        stop_event.set()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def cmd_run(args: argparse.Namespace, config: ExtractionConfig) -> int:
    """Run extraction cycles until done or stopped."""
    sink = JSONLinesSink(path=args.output) if args.output else JSONLinesSink(stream=sys.stdout)
    cycle = ExtractionCycle(build_connector(config), config, sink)

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    try:
        cycle.prepare()
    except Exception as e:
        if isinstance(e, ConnectorError):
            logger.error(f"Initialization failed: {e}")
        else:
            logger.exception(f"Unexpected error during initialization: {e}")
        cycle.close()
        return EXIT_FAILED

    scheduler = PollScheduler(
        cycle.run,
        interval=config.interval,
        stop_event=stop_event,
        stop_on_error=config.stop_on_error,
    )
    try:
        stats = scheduler.run()
    finally:
        cycle.close()

    return EXIT_FAILED if stats.last_cycle_failed else EXIT_OK


def cmd_query(args: argparse.Namespace, config: ExtractionConfig) -> int:
    """Print the queries the next cycle would run."""
    cycle = ExtractionCycle(
        build_connector(config), config, JSONLinesSink(stream=sys.stdout)
    )
    try:
        if config.object_names:
            cycle.prepare()
        for plan in cycle.plan(cycle.current_watermark()):
            print(plan.soql)
    except ConnectorError as e:
        logger.error(f"Could not build query: {e}")
        return EXIT_FAILED
    finally:
        cycle.connector.disconnect()
    return EXIT_OK


def cmd_test_connection(args: argparse.Namespace, config: ExtractionConfig) -> int:
    """Log in and report API limits."""
    result = build_connector(config).test_connection()
    print(json.dumps(result.model_dump(), indent=2))
    return EXIT_OK if result.success else EXIT_FAILED


COMMANDS = {
    "run": cmd_run,
    "query": cmd_query,
    "test-connection": cmd_test_connection,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sfdc-poller",
        description="Extract Salesforce records with SOQL, once or on an interval",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        help="Logging level (default: LOG_LEVEL env or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("run", "Run extraction cycles"),
        ("query", "Print the SOQL for the next cycle"),
        ("test-connection", "Log in and check API access"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--config", "-c", required=True, help="YAML or JSON config file")
        if name == "run":
            sub.add_argument(
                "--output", "-o", help="Append events to this JSON Lines file (default: stdout)"
            )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_config(args.config)
    except (ConfigValidationError, FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG

    return COMMANDS[args.command](args, config)


if __name__ == "__main__":
    sys.exit(main())
