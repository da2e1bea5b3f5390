"""Test fixtures and synthetic snapshot listings."""

from tests.fixtures.transport import (
    NOW,
    FakeTransport,
    make_listing,
    make_snapshot,
    snapshot_name,
)

__all__ = [
    "NOW",
    "FakeTransport",
    "make_listing",
    "make_snapshot",
    "snapshot_name",
]
