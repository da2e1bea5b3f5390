"""
Command-line interface for dailybak.

Usage:
    dailybak -s <server> [-p <passfile>] -b <backup> -l <log> [-n <name>]
             [-e <exclude>]* [-r <days:count>]* [--purge] [-L | <path>*]

    # Nightly backup of / and /home, keeping 2 snapshots over the last week,
    # one over the next 24 days, then one per 2 months and one per 9 months
    dailybak -s nas -b backups -l logs -r 7:2 -r 24:1 -r 60:1 -r 275:1 --purge / /home

    # Show what is stored on the server
    dailybak -s nas -b backups -L
"""

from __future__ import annotations

import argparse
import os
import socket
import sys
from typing import Sequence

from loguru import logger

from dailybak import __version__
from dailybak.config import (
    ENV_BACKUP,
    ENV_LOG,
    ENV_PASSWORD_FILE,
    ENV_SERVER,
    DailybakConfig,
    parse_period,
)
from dailybak.exceptions import ConfigError, TransportError
from dailybak.retention.engine import RetentionEngine
from dailybak.retention.inventory import Inventory
from dailybak.session import BackupSession
from dailybak.transport.rsync import RsyncTransport

EXIT_CONFIG_ERROR = 2


def configure_logging(level: str = "INFO", quiet: bool = False) -> None:
    """Send log records to stderr at the requested level."""
    logger.remove()
    logger.add(sys.stderr, level="ERROR" if quiet else level.upper())


def format_inventory(inventory: Inventory) -> str:
    """Render snapshots as an aligned ``Directory_name Age Status`` table."""
    rows = [("Directory_name", "Age", "Status"), ("---------------", "---", "-------")]
    rows += [(str(s.id), str(s.age_days), s.status.value) for s in inventory]
    widths = [max(len(row[i]) for row in rows) for i in range(3)]
    return "\n".join(
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip() for row in rows
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dailybak",
        description="Daily rsync backups with tiered snapshot retention",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
A "." in the middle of a source path marks the part that is kept on the
server (see rsync -R). Retention periods are given nearest to today first;
without --purge the snapshots that would be removed are only reported.
""",
    )
    parser.add_argument(
        "-s",
        "--server",
        default=os.getenv(ENV_SERVER),
        help=f"Name/address of the rsync server (env: {ENV_SERVER})",
    )
    parser.add_argument(
        "-p",
        "--password-file",
        default=os.getenv(ENV_PASSWORD_FILE),
        help=f"File containing the server account's password (env: {ENV_PASSWORD_FILE})",
    )
    parser.add_argument(
        "-b",
        "--backup",
        default=os.getenv(ENV_BACKUP),
        help=f"Backup module on the server, optionally followed by /prefix (env: {ENV_BACKUP})",
    )
    parser.add_argument(
        "-l",
        "--log",
        default=os.getenv(ENV_LOG),
        help=f"Log module on the server (env: {ENV_LOG})",
    )
    parser.add_argument(
        "-n",
        "--name",
        default=socket.gethostname(),
        help="Host name to store backups under (default: local hostname)",
    )
    parser.add_argument(
        "-e",
        "--exclude",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Pattern to exclude (repeatable)",
    )
    parser.add_argument(
        "-r",
        "--retain",
        action="append",
        default=[],
        metavar="DAYS:COUNT",
        help="Retention period keeping COUNT snapshots over DAYS days (repeatable, nearest first)",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Remove snapshots outside the retention schedule (default: dry-run report)",
    )
    parser.add_argument(
        "-L",
        "--list",
        action="store_true",
        help="Only list backups existing on the server",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Log level for stderr (default: INFO)",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress output except errors",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("paths", nargs="*", help="Absolute paths of directories to back up")
    return parser


def build_config(args: argparse.Namespace) -> DailybakConfig:
    """
    Turn parsed arguments into a validated configuration.

    Raises:
        ConfigError: If a parameter is missing or malformed
    """
    return DailybakConfig(
        server=args.server,
        backup_module=args.backup,
        log_module=args.log,
        host=args.name,
        password_file=args.password_file,
        excludes=list(args.exclude),
        periods=[parse_period(p) for p in args.retain],
        purge=args.purge,
        list_only=args.list,
        sources=list(args.paths),
    )


def main(argv: Sequence[str] | None = None) -> int:
    """
    CLI entry point.

    Returns:
        0 on full success, 2 on configuration errors, otherwise the worst
        status reported by the backup or retention steps
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.quiet)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error(f"Fatal: {e}")
        print(f"Fatal: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    transport = RsyncTransport(config.server, password_file=config.password_file)
    engine = RetentionEngine(transport, config.host_dir, config.periods)

    if config.list_only:
        try:
            inventory = engine.inventory()
        except TransportError as e:
            logger.error(f"Listing failed: {e}")
            return e.returncode
        print(format_inventory(inventory))
        return 0

    status = 0

    if config.sources:
        try:
            backup = BackupSession(config, transport).run()
        except ConfigError as e:
            logger.error(f"Fatal: {e}")
            return EXIT_CONFIG_ERROR
        except TransportError as e:
            logger.error(f"Fatal: {e}")
            return e.returncode
        status = max(status, backup.status)

    if config.periods:
        try:
            retention = engine.run(dry_run=not config.purge)
        except TransportError as e:
            logger.error(f"Retention aborted, could not list snapshots: {e}")
            return max(status, e.returncode)
        status = max(status, retention.status)

        purge = retention.purge
        if purge.dry_run:
            print(f"[DRY-RUN] Would remove: {', '.join(purge.planned) or 'nothing'}")
        else:
            print(f"[APPLY] Removed: {', '.join(purge.removed) or 'nothing'}")
            for error in purge.errors:
                print(f"[FAIL] {error['name']}: {error['error']}", file=sys.stderr)

    return status


if __name__ == "__main__":
    sys.exit(main())
