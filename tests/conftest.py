"""
Shared fixtures for dailybak tests.
"""

from pathlib import Path

import pytest

from dailybak.config import DailybakConfig
from dailybak.retention.policy import Period
from tests.fixtures import FakeTransport


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """Small local directory tree to back up."""
    src = tmp_path / "src"
    (src / "etc").mkdir(parents=True)
    (src / "etc" / "hosts").write_text("127.0.0.1 localhost\n")
    return src


@pytest.fixture
def backup_config(tmp_path: Path, source_tree: Path) -> DailybakConfig:
    """Configuration backing up source_tree as host 'alpha'."""
    return DailybakConfig(
        server="nas",
        backup_module="backups",
        log_module="logs",
        host="alpha",
        excludes=["*.tmp"],
        periods=[Period(7, 2), Period(24, 1)],
        sources=[str(source_tree)],
        tmp_dir=tmp_path / "tmp",
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Transport double with an empty store."""
    return FakeTransport()
