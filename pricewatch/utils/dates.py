"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, datetime, timezone

import pendulum

DEFAULT_TZ = "Europe/Moscow"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    return now_in_tz().date()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in job records."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: str) -> date:
    return pendulum.parse(value).date()


def format_report_date(value: date) -> str:
    return value.strftime("%d.%m.%Y")


def format_log_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}"
