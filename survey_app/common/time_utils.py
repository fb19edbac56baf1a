# survey_app/common/time_utils.py
from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(dt: datetime) -> str:
    # always stored in UTC so string comparison in SQL is chronological
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def utc_now_iso() -> str:
    return to_iso(utc_now())
