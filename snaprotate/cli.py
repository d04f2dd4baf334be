"""Command line interface.

Usage:
    snaprotate init
    snaprotate hourly            # run one cycle; also daily/weekly/monthly/yearly
    snaprotate remove daily.2
    snaprotate config
    snaprotate list
    snaprotate -n -v daily       # dry-run with debug output
    snaprotate -c ./config.json hourly
"""

import argparse
import json
import logging
import os
import sys

from snaprotate.core.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from snaprotate.core.errors import RotationError
from snaprotate.core.lock import LockGuard
from snaprotate.retention.lifecycle import build_controller
from snaprotate.retention.policy import GENERATIONS
from snaprotate.storage.executor import Executor

logger = logging.getLogger("snaprotate")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LEVELS = [logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL]


def resolve_level(verbose: int, quiet: int, base: str | None = None) -> int:
    """Shift the base level one step per -v (down) or -q (up)."""
    base_level = getattr(logging, (base or "INFO").upper(), logging.INFO)
    position = LEVELS.index(base_level) if base_level in LEVELS else 1
    position = max(0, min(len(LEVELS) - 1, position - verbose + quiet))
    return LEVELS[position]


def configure_logging(level: int, log_file: str | None = None):
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snaprotate",
        description="Hourly/daily/weekly/monthly snapshot rotation",
    )
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config.json (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="More output (repeatable)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="count",
        default=0,
        help="Less output (repeatable)",
    )
    parser.add_argument(
        "-n", "--dry-run",
        action="store_true",
        help="Log every snapshot/copy/move/delete without performing it",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create the first hourly slot")
    for generation in GENERATIONS:
        sub.add_parser(generation, help=f"Run one {generation} rotation cycle")
    remove = sub.add_parser("remove", help="Delete one slot, e.g. daily.2")
    remove.add_argument("slot", help="Slot name <generation>.<index>")
    sub.add_parser("config", help="Print the effective configuration")
    sub.add_parser("list", help="Show occupied slots per generation")
    return parser


def _run_command(args, settings: Settings, executor: Executor) -> int:
    controller = build_controller(settings, executor)

    if args.command == "config":
        print(json.dumps(settings.to_dict(), indent=2))
        return 0

    if args.command == "list":
        for generation, indices in controller.status().items():
            print(f"{generation}: {' '.join(str(i) for i in indices) or '-'}")
        return 0

    with LockGuard(settings.lock_file, executor):
        if args.command == "init":
            controller.init()
            return 0
        if args.command == "remove":
            return 0 if controller.remove(args.slot) else 1
        controller.run_cycle(args.command)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = resolve_level(args.verbose, args.quiet, os.environ.get("LOG_LEVEL"))
    configure_logging(level)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, RotationError) as exc:
        logger.critical("%s", exc)
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    if settings.log_file:
        try:
            configure_logging(level, settings.log_file)
        except OSError as exc:
            logger.critical("Cannot open log file %s: %s", settings.log_file, exc)
            print(f"FATAL: cannot open log file {settings.log_file}: {exc}", file=sys.stderr)
            return 1

    executor = Executor(dry_run=args.dry_run)
    if args.dry_run:
        logger.info("Dry-run: no changes will be made")

    try:
        return _run_command(args, settings, executor)
    except (RotationError, ValueError) as exc:
        logger.critical("%s", exc)
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
