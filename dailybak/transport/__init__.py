"""
Transports to the remote backup store.

Usage:
    from dailybak.transport import RsyncTransport

    transport = RsyncTransport("backup.example.com", password_file="/etc/dailybak.pass")
    names = transport.list("backups/myhost")
"""

from dailybak.transport.base import Transport
from dailybak.transport.rsync import RsyncTransport, parse_listing

__all__ = [
    "Transport",
    "RsyncTransport",
    "parse_listing",
]
