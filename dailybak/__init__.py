"""
dailybak - daily rsync backups with tiered snapshot retention.

Sends data to an rsync daemon using the last successful backup as a hard-link
reference, then prunes old snapshots according to a grandfather-father-son
retention schedule.
"""

try:
    from importlib.metadata import version

    __version__ = version("dailybak")
except Exception:
    __version__ = "0.0.0"  # Fallback for development
