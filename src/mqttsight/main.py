"""
Command line entry point.

Parses flags into settings overrides, configures logging and runs the
monitoring session. Exit code 0 on graceful shutdown, 1 on configuration,
connection or subscription failure.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from mqttsight.app import EXIT_FAILURE, MonitorApp
from mqttsight.config import Settings, build_settings
from mqttsight.core.exceptions import MqttSightException

DESCRIPTION = "MQTT Sight - An Advanced MQTT Message Visualizer"

EPILOG = """\
Examples:
  mqttsight -t "#" -h localhost -u username -P password -d
  mqttsight -t "sensor/#" -h localhost -u username -P password --clear
  mqttsight -t "#" -h localhost -e "internal/*,debug/*,sys*"
  mqttsight -t "#" -h localhost -f "error-*,warning-*" --live
  mqttsight -t "#" -h localhost -x "password,token,apikey" -p last4

Interactive Commands:
  i              Show detailed information about the most recent message
  + / -          Increase / decrease table width
  r              Force refresh the display immediately
  a              Toggle auto-refresh mode (default: ON)
  s              Toggle sort mode (time vs topic)
  1 / 2          Sort by topic / by time
  f              Toggle filter highlight mode
  m              Toggle mask mode
  any key        Return to table view
  Ctrl+C         Exit the application
"""


def configure_logging(log_level: str = "WARNING", log_file: Optional[Path] = None) -> None:
    """Configure structured logging; stdout belongs to the table view."""
    handler: logging.Handler
    if log_file is not None:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[handler],
        force=True,
    )

    # paho logs through its own logger when enabled
    logging.getLogger("paho").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=log_file is None),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    # -h is the broker host, so help is --help only
    parser = argparse.ArgumentParser(
        prog="mqttsight",
        description=DESCRIPTION,
        epilog=EPILOG,
        add_help=False,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-t", dest="topic", help='Topic to subscribe to (default: "#")')
    parser.add_argument("-h", dest="host", help='MQTT broker host (default: "localhost")')
    parser.add_argument("--port", type=int, help="MQTT broker port (default: 1883)")
    parser.add_argument("-u", dest="username", help="Username for authentication")
    parser.add_argument("-P", dest="password", help="Password for authentication (requires -u)")
    parser.add_argument("-d", dest="debug", action="store_true", help="Enable debug output")
    parser.add_argument("-e", "--exclude", help="Exclude topics matching pattern(s), comma-separated")
    parser.add_argument("-f", "--filter", dest="include",
                        help="Only include topics/payloads matching pattern(s), comma-separated")
    parser.add_argument("-m", "--mode", help="Filter mode: topic, payload or both (default: both)")
    parser.add_argument("-x", "--mask", help="Mask patterns in topics and payloads, comma-separated")
    parser.add_argument("-p", "--preserve", help="Preserve part of masked text: none, first4, last4, both4")
    parser.add_argument("-s", "--sort", help="Sort messages by: time or topic (default: time)")
    parser.add_argument("--clear", action="store_true", help="Clear retained messages on subscribed topics")
    parser.add_argument("--live", action="store_true", help="Show all messages, not just retained ones")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--log-file", help="Write logs to this file")
    parser.add_argument("--metrics-port", type=int, help="Serve Prometheus metrics on this port")
    parser.add_argument("--help", action="help", help="Display this help message")
    parser.add_argument("positionals", nargs="*", help=argparse.SUPPRESS)
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed flags onto nested settings overrides; unset flags are omitted."""
    sections: Dict[str, Dict[str, Any]] = {
        "broker": {
            "topic": args.topic,
            "host": args.host,
            "port": args.port,
            "username": args.username,
            "password": args.password,
        },
        "filter": {
            "exclude": args.exclude,
            "include": args.include,
            "mode": args.mode,
        },
        "masking": {
            "patterns": args.mask,
            "preserve": args.preserve,
        },
        "display": {
            "sort": args.sort,
            "live": args.live or None,
            "clear_retained": args.clear or None,
        },
    }
    overrides: Dict[str, Any] = {
        name: {k: v for k, v in values.items() if v is not None}
        for name, values in sections.items()
    }
    if args.debug:
        overrides["debug"] = True
        overrides["log_level"] = "DEBUG"
    if args.log_file:
        overrides["log_file"] = args.log_file
    if args.metrics_port is not None:
        overrides["metrics_port"] = args.metrics_port
    return overrides


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Parse arguments and build settings; raises ConfigurationError or exits on --help."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.positionals:
        parser.print_help()
        parser.exit(0)
    return build_settings(config_path=args.config, overrides=overrides_from_args(args))


def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = load_settings(argv)
    except MqttSightException as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code

    configure_logging(settings.log_level, settings.log_file)
    logger = structlog.get_logger(__name__)

    try:
        return asyncio.run(MonitorApp(settings).run())
    except MqttSightException as e:
        logger.error("Fatal error", error=str(e), error_code=e.error_code, details=e.details)
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except Exception as e:
        logger.error("Unexpected error", error=str(e), error_type=type(e).__name__, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
