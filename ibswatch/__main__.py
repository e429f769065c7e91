"""Command line entry point: python -m ibswatch."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .app import IbsWatchApp

# Third-party loggers kept at WARNING even with --verbose
QUIET_LOGGERS = ("bleak", "aiohttp")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ibswatch",
        description="Inkbird BLE thermo-hygrometer poller",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=Path("config.yaml"),
        help="YAML configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    parser.add_argument(
        "-o", "--console",
        nargs="?",
        const=0,
        type=int,
        default=None,
        metavar="INTERVAL",
        help=(
            "Print readings to the console. "
            "--console alone = keypress mode (Enter to read), "
            "--console 60 = read every 60 seconds"
        ),
    )
    parser.add_argument(
        "--api-port",
        type=int,
        default=None,
        metavar="PORT",
        help="Serve the JSON API on this port",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger("ibswatch")

    config_path = args.config.resolve()
    if not config_path.is_file():
        logger.error("No configuration at %s (see config.example.yaml)", config_path)
        return 1

    app = IbsWatchApp(config_path, console_interval=args.console, api_port=args.api_port)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
