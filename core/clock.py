"""
Core Module - Clock Helpers.

============================================================
RESPONSIBILITY
============================================================
UTC-only time helpers shared by the ledger, the planner and
the storage layer.

- utcnow() is the single source of "now"
- SQLite hands back naive datetimes; ensure_utc() repairs them
- Prompt timestamps use ISO 8601 with milliseconds and "Z"

============================================================
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso_z(dt: Optional[datetime] = None) -> str:
    """Format as 2024-05-01T14:30:00.000Z."""
    dt = ensure_utc(dt) if dt is not None else utcnow()
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
