"""
Exception hierarchy for dailybak.
"""

from __future__ import annotations


class DailybakError(Exception):
    """Base class for all dailybak errors."""
    pass


class ConfigError(DailybakError, ValueError):
    """Raised when a mandatory parameter is missing or malformed."""
    pass


class TransportError(DailybakError):
    """
    Raised when the transport fails to list, upload or remove an entry.

    Attributes:
        returncode: Exit status reported by the transport (never 0)
        stderr: Captured error output, if any
    """

    def __init__(self, message: str, returncode: int = 1, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode or 1
        self.stderr = stderr


class DataError(DailybakError):
    """Raised when a snapshot name does not carry a valid timestamp."""
    pass
