"""
Run configuration for dailybak.

Settings come from the command line, with defaults for the server, password
file and modules read from ``DAILYBAK_*`` environment variables. Validation
happens when the configuration is built, before any remote contact.
"""

from __future__ import annotations

import os
import socket
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from dailybak.exceptions import ConfigError
from dailybak.retention.policy import Period

ENV_SERVER = "DAILYBAK_SERVER"
ENV_PASSWORD_FILE = "DAILYBAK_PASSWORD_FILE"
ENV_BACKUP = "DAILYBAK_BACKUP"
ENV_LOG = "DAILYBAK_LOG"


def parse_period(text: str) -> Period:
    """
    Parse a ``days:count`` retention period.

    Args:
        text: Period specification, e.g. ``"7:2"``

    Returns:
        Period spanning ``days`` days and keeping ``count`` snapshots

    Raises:
        ConfigError: If the text is not two integers separated by a colon
    """
    days, sep, count = text.strip().partition(":")
    if not sep:
        raise ConfigError(f"Invalid retention period {text!r}: expected days:count")
    try:
        span_days, keep_count = int(days), int(count)
    except ValueError as e:
        raise ConfigError(f"Invalid retention period {text!r}: expected integers") from e
    try:
        return Period(span_days=span_days, keep_count=keep_count)
    except ConfigError as e:
        raise ConfigError(f"Invalid retention period {text!r}: {e}") from e


@dataclass
class DailybakConfig:
    """
    Configuration of one dailybak run.

    Attributes:
        server: Name or address of the rsync server
        backup_module: Backup module, optionally followed by ``/prefix``
        log_module: Log module, required when sources are backed up
        host: Name under which this host's backups are stored
        password_file: File holding the server account's password
        excludes: rsync exclude patterns
        periods: Retention periods, nearest to today first
        purge: Actually remove purge-eligible snapshots (dry-run otherwise)
        list_only: Only list the snapshots found on the server
        sources: Local paths to back up
        tmp_dir: Where the session's temporary directory is created
    """

    server: str | None = None
    backup_module: str | None = None
    log_module: str | None = None
    host: str = field(default_factory=socket.gethostname)
    password_file: str | None = None
    excludes: list[str] = field(default_factory=list)
    periods: list[Period] = field(default_factory=list)
    purge: bool = False
    list_only: bool = False
    sources: list[str] = field(default_factory=list)
    tmp_dir: Path = field(default_factory=lambda: Path(os.getenv("TMPDIR") or tempfile.gettempdir()))

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.host:
            raise ConfigError("Unknown local hostname. Force it with '-n'.")
        if "/" in self.host:
            raise ConfigError(f"Invalid host name: {self.host!r}")
        if not self.server or not self.backup_module:
            raise ConfigError("Both server and backup module must be specified.")
        if self.list_only:
            return
        if self.sources and not self.log_module:
            raise ConfigError("The log module must be specified (-l).")
        if not self.sources and not self.periods:
            raise ConfigError("Nothing to do! Give paths to back up and/or retention periods.")

    @property
    def backup_prefix(self) -> str:
        """
        Directory prefix inside the backup module.

        Everything after the first ``/`` of the backup module, or ``/``.
        """
        _, sep, prefix = self.backup_module.partition("/")
        if not sep or not prefix.strip("/"):
            return "/"
        return "/" + prefix.rstrip("/")

    @property
    def host_dir(self) -> str:
        """Remote directory holding this host's snapshots."""
        return f"{self.backup_module.rstrip('/')}/{self.host}"

    @property
    def log_dir(self) -> str:
        """Remote directory holding this host's session logs."""
        return f"{self.log_module.rstrip('/')}/{self.host}"

    @property
    def link_reference(self) -> str:
        """``--link-dest`` path of the last successful backup, module-relative."""
        return f"{self.backup_prefix.rstrip('/')}/{self.host}/LAST/"
