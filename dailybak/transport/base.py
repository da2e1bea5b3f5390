"""
Abstract transport to the remote backup store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence


class Transport(ABC):
    """
    Operations dailybak needs from the remote store.

    Remote paths are relative to the store root (e.g. ``myhost/LAST``).
    Every method except ``sync_incremental`` raises TransportError on failure.
    """

    @abstractmethod
    def list(self, path: str) -> list[str]:
        """Return the entry names found directly under a remote directory."""

    @abstractmethod
    def mirror(self, local_path: Path, remote_dir: str) -> None:
        """Copy a local file or directory into a remote directory."""

    @abstractmethod
    def sync_incremental(
        self,
        sources: Sequence[str],
        dest: str,
        link_reference: str,
        excludes: Sequence[str] = (),
        log_file: Path | None = None,
    ) -> int:
        """
        Copy sources into dest, hard-linking files unchanged since link_reference.

        Returns:
            Transfer exit status, 0 on success
        """

    @abstractmethod
    def replace_empty(self, remote_entry: str) -> None:
        """Remove a remote entry by overwriting its parent with an empty view."""

    @abstractmethod
    def symlink(self, remote_dir: str, target: str, names: Sequence[str]) -> None:
        """Create or replace symlinks ``remote_dir/<name> -> target``."""
