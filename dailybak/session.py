"""
Daily backup session.

Sends the configured sources to the backup server using the last successful
backup (``<host>/LAST``) as a hard-link reference, archives the session log
in the log module, and on success advances ``LAST`` and drops the
``<date>-OK`` marker next to the new snapshot.

Storage layout on the server:
    <backup>/<host>/<YYYYMMDD-HHMMSS>/   snapshot data
    <backup>/<host>/<YYYYMMDD-HHMMSS>-OK  success marker (symlink)
    <backup>/<host>/LAST                  symlink to the last good snapshot
    <log>/<host>/backup-<host>-<date>.log session logs
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from loguru import logger

from dailybak.config import DailybakConfig
from dailybak.exceptions import ConfigError, TransportError
from dailybak.retention.inventory import SnapshotId
from dailybak.transport.base import Transport

LAST_LINK = "LAST"


@dataclass
class BackupResult:
    """
    Outcome of a backup session.

    Attributes:
        snapshot_id: Id of the snapshot created by the session
        status: Worst status of the transfer and the LAST update, 0 on success
        log_file: Local session log
        last_updated: Whether LAST and the -OK marker were written
        temp_dir: Temporary directory, kept after a failure for inspection
    """

    snapshot_id: SnapshotId
    status: int
    log_file: Path
    last_updated: bool = False
    temp_dir: Path | None = None

    @property
    def success(self) -> bool:
        return self.status == 0


class BackupSession:
    """
    One dated backup of the configured sources.

    The transfer status decides everything: LAST only moves forward after a
    transfer that returned 0, so a failed session never hides the last good
    snapshot.
    """

    def __init__(
        self,
        config: DailybakConfig,
        transport: Transport,
        now: datetime | None = None,
    ):
        """
        Initialize the session.

        Args:
            config: Run configuration (sources, modules, host, excludes)
            transport: Transport to the backup server
            now: Session time, used to name the snapshot (defaults to now)
        """
        self._config = config
        self._transport = transport
        self._snapshot_id = SnapshotId.from_datetime(now or datetime.now())

    @property
    def snapshot_id(self) -> SnapshotId:
        return self._snapshot_id

    def run(self) -> BackupResult:
        """
        Run the backup.

        Returns:
            BackupResult describing the session

        Raises:
            ConfigError: If a source path does not exist
            TransportError: If the host directories cannot be created remotely
        """
        config = self._config
        date = str(self._snapshot_id)

        missing = [s for s in config.sources if not Path(s).exists()]
        if missing:
            raise ConfigError(f"Source path(s) do not exist: {', '.join(missing)}")

        config.tmp_dir.mkdir(parents=True, exist_ok=True)
        temp_dir = Path(tempfile.mkdtemp(prefix="dailybak.", dir=config.tmp_dir))
        log_file = temp_dir / f"backup-{config.host}-{date}.log"
        sink_id = logger.add(log_file, level="INFO")

        try:
            status = self._transfer(temp_dir, log_file)
            result = BackupResult(snapshot_id=self._snapshot_id, status=status, log_file=log_file)

            if status != 0:
                logger.error(
                    f"Errors found (status={status}), NOT updating {LAST_LINK} in {config.host_dir}; "
                    f"keeping temp dir {temp_dir}"
                )
                result.temp_dir = temp_dir
                return result

            logger.info(f"Updating {LAST_LINK} and adding {date}-OK in {config.host_dir}")
            try:
                self._transport.symlink(config.host_dir, date, [LAST_LINK, self._snapshot_id.ok_marker])
            except TransportError as e:
                logger.error(f"Failed to update {LAST_LINK}: {e}; keeping temp dir {temp_dir}")
                result.status = e.returncode
                result.temp_dir = temp_dir
                return result

            result.last_updated = True
            logger.info(f"Backup {date} complete")
        finally:
            logger.remove(sink_id)

        shutil.rmtree(temp_dir, ignore_errors=True)
        return result

    def _transfer(self, temp_dir: Path, log_file: Path) -> int:
        config = self._config
        date = str(self._snapshot_id)
        host_tree = temp_dir / config.host
        host_tree.mkdir()

        logger.info(f"Creating {config.host} on {config.server}::{config.backup_module}")
        self._transport.mirror(host_tree, config.backup_module)
        logger.info(f"Creating {config.host} on {config.server}::{config.log_module}")
        self._transport.mirror(host_tree, config.log_module)

        logger.info(f"Creating {config.host_dir}/{date}")
        (host_tree / date).mkdir()
        try:
            self._transport.mirror(host_tree / date, config.host_dir)
        except TransportError as e:
            # rsync creates the destination itself; the transfer below decides
            logger.warning(f"Could not pre-create {config.host_dir}/{date}: {e}")

        logger.info(f"Saving ({' '.join(config.sources)}) to {config.host_dir}/{date}")
        status = self._transport.sync_incremental(
            config.sources,
            f"{config.host_dir}/{date}",
            link_reference=config.link_reference,
            excludes=[f"{temp_dir}/", *config.excludes],
            log_file=log_file,
        )
        logger.info(f"return code: {status}")

        try:
            self._transport.mirror(log_file, config.log_dir)
        except TransportError as e:
            logger.error(f"Failed to upload session log {log_file.name}: {e}")

        return status
