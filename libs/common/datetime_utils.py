"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from libs.common.config import get_settings


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC.

    Backends without timezone support (SQLite) hand back naive values for
    ``DateTime(timezone=True)`` columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_date_stamp(moment: Optional[datetime] = None) -> str:
    """``YYYYMMDD`` of ``moment`` in the marketplace timezone."""
    moment = ensure_utc(moment) or utc_now()
    return moment.astimezone(ZoneInfo(get_settings().TIMEZONE)).strftime("%Y%m%d")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse provider ISO-8601 timestamps (``Z`` suffix allowed)."""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None
