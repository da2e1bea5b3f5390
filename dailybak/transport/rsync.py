"""
rsync daemon transport.

All remote paths are ``<module>/<path>`` and are addressed on the server as
``<server>::<module>/<path>``. Entries are removed without shell access to
the server by syncing an empty directory onto the parent with a filter that
only selects the entry to delete.
"""

from __future__ import annotations

import re
import subprocess
import tempfile
from pathlib import Path
from typing import Sequence

from loguru import logger

from dailybak.exceptions import TransportError
from dailybak.transport.base import Transport

# rsync exit codes used when the process itself cannot be run
RSYNC_NOT_FOUND = 127
RSYNC_TIMEOUT = 30

# "drwxr-xr-x          4096 2015/01/31 02:00:01 20150131-020001"
_LISTING_RE = re.compile(
    r"^(?P<perms>\S{10})\s+(?P<size>[\d,.]+)\s+"
    r"(?P<date>\d{4}/\d{2}/\d{2})\s+(?P<time>\d{2}:\d{2}:\d{2})\s(?P<name>.+)$"
)


def parse_listing(output: str) -> list[str]:
    """
    Extract entry names from ``rsync --list-only`` output.

    Symlinks are reported as ``name -> target``; only the name is kept.
    The ``.`` entry describing the listed directory itself is dropped.

    Args:
        output: Raw stdout of rsync

    Returns:
        Entry names in listing order
    """
    names = []
    for line in output.splitlines():
        match = _LISTING_RE.match(line.rstrip("\n"))
        if not match:
            continue
        name = match.group("name")
        if match.group("perms").startswith("l") and " -> " in name:
            name = name.split(" -> ", 1)[0]
        if name in (".", ".."):
            continue
        names.append(name)
    return names


class RsyncTransport(Transport):
    """
    Transport talking to an rsync daemon.

    Args:
        server: Name or address of the rsync server
        password_file: Optional file holding the account's password
        rsync: rsync executable to run
        timeout: Optional timeout in seconds for each rsync invocation
    """

    def __init__(
        self,
        server: str,
        password_file: str | None = None,
        rsync: str = "rsync",
        timeout: float | None = None,
    ):
        self.server = server
        self.password_file = password_file
        self.rsync = rsync
        self.timeout = timeout

    def url(self, path: str) -> str:
        """Daemon URL of a remote path."""
        return f"{self.server}::{path.lstrip('/')}"

    def _command(self, options: Sequence[str], operands: Sequence[str]) -> list[str]:
        cmd = [self.rsync, *options]
        if self.password_file:
            cmd += ["--password-file", self.password_file]
        return cmd + list(operands)

    def _run(
        self,
        options: Sequence[str],
        operands: Sequence[str],
        capture: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = self._command(options, operands)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd, capture_output=capture, text=True, errors="replace", timeout=self.timeout
            )
        except FileNotFoundError as e:
            raise TransportError(f"rsync executable not found: {self.rsync}", RSYNC_NOT_FOUND) from e
        except subprocess.TimeoutExpired as e:
            raise TransportError(f"rsync timed out after {self.timeout}s", RSYNC_TIMEOUT) from e

    @staticmethod
    def _check(result: subprocess.CompletedProcess, action: str) -> None:
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise TransportError(
                f"{action} failed (rsync exit {result.returncode})" + (f": {stderr}" if stderr else ""),
                result.returncode,
                stderr,
            )

    def list(self, path: str) -> list[str]:
        result = self._run(["--no-h", "--list-only"], [self.url(path.rstrip("/")) + "/"])
        self._check(result, f"Listing {path}")
        return parse_listing(result.stdout or "")

    def mirror(self, local_path: Path, remote_dir: str) -> None:
        result = self._run(
            ["-x", "-vaSH", "--stats", "--no-R"],
            [str(local_path), self.url(remote_dir.rstrip("/")) + "/"],
            capture=False,
        )
        self._check(result, f"Uploading {local_path} to {remote_dir}")

    def sync_incremental(
        self,
        sources: Sequence[str],
        dest: str,
        link_reference: str,
        excludes: Sequence[str] = (),
        log_file: Path | None = None,
    ) -> int:
        options = []
        if log_file is not None:
            options.append(f"--log-file={log_file}")
        options += ["-x", "-vaSHR", "--stats"]
        for pattern in excludes:
            options += ["--exclude", pattern]
        options.append(f"--link-dest={link_reference}")

        try:
            result = self._run(options, [*sources, self.url(dest.rstrip("/")) + "/"], capture=False)
        except TransportError as e:
            logger.error(str(e))
            return e.returncode
        return result.returncode

    def replace_empty(self, remote_entry: str) -> None:
        parent, _, name = remote_entry.rstrip("/").rpartition("/")
        if not name:
            raise TransportError(f"Refusing to remove invalid entry: {remote_entry!r}")

        with tempfile.TemporaryDirectory(prefix="dailybak-empty.") as empty:
            result = self._run(
                [
                    "-r",
                    "--delete",
                    f"--include=/{name}",
                    f"--include=/{name}/***",
                    "--exclude=*",
                ],
                [f"{empty}/", self.url(parent) + "/"],
            )
        self._check(result, f"Removing {remote_entry}")

    def symlink(self, remote_dir: str, target: str, names: Sequence[str]) -> None:
        with tempfile.TemporaryDirectory(prefix="dailybak-links.") as tmp:
            links = []
            for name in names:
                link = Path(tmp) / name
                link.symlink_to(target)
                links.append(str(link))
            result = self._run(
                ["-x", "--delete", "-vaSH", "--no-R", "--stats"],
                [*links, self.url(remote_dir.rstrip("/")) + "/"],
            )
        self._check(result, f"Linking {', '.join(names)} -> {target} in {remote_dir}")
