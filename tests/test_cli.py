"""
Tests for the dailybak command line.

The rsync transport is replaced by the in-memory FakeTransport, so these
tests exercise argument handling, exit codes and output only.
"""

from datetime import datetime
from unittest.mock import patch

import pytest

from dailybak.cli import EXIT_CONFIG_ERROR, build_parser, format_inventory, main
from dailybak.config import ENV_BACKUP, ENV_LOG, ENV_PASSWORD_FILE, ENV_SERVER
from dailybak.retention.inventory import build_inventory
from tests.fixtures import NOW, FakeTransport, make_listing, snapshot_name

HOST_DIR = "backups/alpha"
BASE_ARGS = ["-s", "nas", "-b", "backups", "-n", "alpha"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from DAILYBAK_* settings of the machine running them."""
    for name in (ENV_SERVER, ENV_PASSWORD_FILE, ENV_BACKUP, ENV_LOG):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TMPDIR", str(tmp_path / "tmp"))


@pytest.fixture(autouse=True)
def keep_logging():
    """Leave the test session's log handlers in place."""
    with patch("dailybak.cli.configure_logging"):
        yield


def run_with(transport: FakeTransport, argv: list[str]) -> int:
    with patch("dailybak.cli.RsyncTransport", return_value=transport) as mock_cls:
        code = main(argv)
    mock_cls.assert_called_once()
    return code


class TestParser:
    """Tests for argument parsing."""

    def test_repeatable_options(self):
        """Excludes and retention periods accumulate in order."""
        args = build_parser().parse_args(BASE_ARGS + ["-e", "*.tmp", "-e", "cache/", "-r", "7:2", "-r", "24:1"])

        assert args.exclude == ["*.tmp", "cache/"]
        assert args.retain == ["7:2", "24:1"]
        assert args.purge is False

    def test_env_defaults(self, monkeypatch):
        """Server and modules default to the DAILYBAK_* variables."""
        monkeypatch.setenv(ENV_SERVER, "backuphost")
        monkeypatch.setenv(ENV_BACKUP, "daily")
        monkeypatch.setenv(ENV_LOG, "daily-logs")

        args = build_parser().parse_args([])

        assert (args.server, args.backup, args.log) == ("backuphost", "daily", "daily-logs")


class TestConfigErrors:
    """Tests for configuration failures."""

    def test_missing_server(self, capsys):
        """Without a server the run stops before contacting anything."""
        with patch("dailybak.cli.RsyncTransport") as mock_cls:
            code = main(["-b", "backups", "-n", "alpha", "-r", "7:1"])

        assert code == EXIT_CONFIG_ERROR
        mock_cls.assert_not_called()
        assert "Fatal:" in capsys.readouterr().err

    def test_bad_period(self, capsys):
        """A malformed period is a configuration error."""
        with patch("dailybak.cli.RsyncTransport") as mock_cls:
            code = main(BASE_ARGS + ["-r", "seven:two"])

        assert code == EXIT_CONFIG_ERROR
        mock_cls.assert_not_called()
        assert "seven:two" in capsys.readouterr().err

    def test_nothing_to_do(self):
        """No paths and no periods is a configuration error."""
        with patch("dailybak.cli.RsyncTransport"):
            assert main(BASE_ARGS) == EXIT_CONFIG_ERROR

    def test_missing_source(self, tmp_path):
        """A source path that does not exist is a configuration error."""
        transport = FakeTransport()

        code = run_with(transport, BASE_ARGS + ["-l", "logs", str(tmp_path / "missing")])

        assert code == EXIT_CONFIG_ERROR
        assert transport.calls == []


class TestListMode:
    """Tests for -L."""

    def test_prints_table(self, capsys):
        """Listing prints one row per snapshot."""
        now = datetime.now()
        transport = FakeTransport(listings={HOST_DIR: make_listing(ok_ages=[3], failed_ages=[1], now=now)})

        code = run_with(transport, BASE_ARGS + ["-L"])

        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("Directory_name")
        assert snapshot_name(3, now) in out
        assert "SUCCESS" in out
        assert "FAILURE" in out
        assert transport.methods() == ["list"]

    def test_listing_failure(self):
        """A failed listing exits with the transport status."""
        transport = FakeTransport(fail_list={HOST_DIR: 5})

        assert run_with(transport, BASE_ARGS + ["-L"]) == 5


class TestRetention:
    """Tests for retention-only runs."""

    def test_dry_run_by_default(self, capsys):
        """Without --purge nothing is removed and the candidates are printed."""
        now = datetime.now()
        transport = FakeTransport(listings={HOST_DIR: make_listing(ok_ages=range(0, 15), now=now)})

        code = run_with(transport, BASE_ARGS + ["-r", "7:2", "-r", "5:1"])

        out = capsys.readouterr().out
        assert code == 0
        assert "[DRY-RUN] Would remove:" in out
        assert snapshot_name(14, now) in out
        assert transport.removed == []

    def test_purge(self, capsys):
        """--purge removes the candidates and reports them."""
        now = datetime.now()
        transport = FakeTransport(listings={HOST_DIR: make_listing(ok_ages=range(0, 15), now=now)})

        code = run_with(transport, BASE_ARGS + ["-r", "7:2", "-r", "5:1", "--purge"])

        assert code == 0
        assert "[APPLY] Removed:" in capsys.readouterr().out
        assert snapshot_name(14, now) in transport.removed

    def test_removal_failure_status(self, capsys):
        """Removal failures are printed and set the exit status."""
        now = datetime.now()
        failing = snapshot_name(14, now)
        transport = FakeTransport(
            listings={HOST_DIR: make_listing(ok_ages=range(0, 15), now=now)},
            fail_remove={failing: 23},
        )

        code = run_with(transport, BASE_ARGS + ["-r", "7:2", "-r", "5:1", "--purge"])

        assert code == 23
        assert f"[FAIL] {failing}" in capsys.readouterr().err

    def test_listing_failure_aborts(self):
        """A failed listing aborts retention with the transport status."""
        transport = FakeTransport(fail_list={HOST_DIR: 10})

        assert run_with(transport, BASE_ARGS + ["-r", "7:1", "--purge"]) == 10
        assert "replace_empty" not in transport.methods()


class TestBackupAndRetention:
    """Tests for runs that back up and then apply retention."""

    def test_backup_then_retention(self, source_tree):
        """A clean backup is followed by the retention pass."""
        transport = FakeTransport()

        code = run_with(transport, BASE_ARGS + ["-l", "logs", "-r", "7:1", str(source_tree)])

        assert code == 0
        methods = transport.methods()
        assert methods.index("symlink") < methods.index("list")

    def test_failed_backup_still_runs_retention(self, source_tree):
        """A partial transfer is reported but retention still runs."""
        transport = FakeTransport(sync_status=24)

        code = run_with(transport, BASE_ARGS + ["-l", "logs", "-r", "7:1", str(source_tree)])

        assert code == 24
        assert "list" in transport.methods()
        assert "symlink" not in transport.methods()

    def test_fatal_backup_skips_retention(self, source_tree):
        """When the host directory cannot be created retention is skipped."""
        transport = FakeTransport(fail_mirror={"backups": 5})

        code = run_with(transport, BASE_ARGS + ["-l", "logs", "-r", "7:1", str(source_tree)])

        assert code == 5
        assert "list" not in transport.methods()


class TestFormatInventory:
    """Tests for format_inventory()."""

    def test_columns(self):
        """Rows are aligned under the header."""
        inventory = build_inventory(make_listing(ok_ages=[12], failed_ages=[3]), NOW)

        lines = format_inventory(inventory).splitlines()

        assert lines[0].split() == ["Directory_name", "Age", "Status"]
        assert lines[1].startswith("---------------")
        assert lines[2].split() == [snapshot_name(12), "12", "SUCCESS"]
        assert lines[3].split() == [snapshot_name(3), "3", "FAILURE"]
        assert lines[2][lines[0].index("Age"):].startswith("12")

    def test_empty(self):
        """An empty inventory prints only the header."""
        assert len(format_inventory(build_inventory([], NOW)).splitlines()) == 2
