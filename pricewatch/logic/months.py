"""Month label parsing and formatting."""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable

MONTHS_GENITIVE = [
    "января",
    "февраля",
    "марта",
    "апреля",
    "мая",
    "июня",
    "июля",
    "августа",
    "сентября",
    "октября",
    "ноября",
    "декабря",
]

# Prefix -> month number. Four-letter prefixes are tried before three-letter ones.
MONTH_WORDS = {
    "янв": 1,
    "фев": 2,
    "мар": 3,
    "апр": 4,
    "май": 5,
    "мая": 5,
    "июн": 6,
    "июл": 7,
    "авг": 8,
    "сен": 9,
    "сент": 9,
    "окт": 10,
    "ноя": 11,
    "дек": 12,
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "sept": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

DAY_MONTH_YEAR_RE = re.compile(r"(?<!\d)(\d{1,2})\.(\d{1,2})\.(\d{4})(?!\d)")
ISO_MONTH_RE = re.compile(r"(?<!\d)(\d{4})-(\d{1,2})(?!\d)")
MONTH_YEAR_RE = re.compile(r"(?<!\d)(\d{1,2})[./-](\d{2}|\d{4})(?!\d)")
WORD_RE = re.compile(r"[а-яёa-z]+")
YEAR_RE = re.compile(r"(?<!\d)(20\d{2}|\d{2})(?!\d)")
PACKED_RE = re.compile(r"(?<!\d)(20\d{2})(\d{2})(?!\d)")


def _full_year(value: str) -> int:
    year = int(value)
    return year + 2000 if year < 100 else year


def _valid(year: int, month: int) -> tuple[int, int] | None:
    if 1 <= month <= 12:
        return year, month
    return None


def _month_from_word(text: str) -> int | None:
    for match in WORD_RE.finditer(text):
        word = match.group(0)
        for size in (4, 3):
            month = MONTH_WORDS.get(word[:size])
            if month:
                return month
    return None


def resolve_label(label: str) -> tuple[int, int] | None:
    """Resolve a chart axis label to ``(year, month)``.

    Accepted shapes, tried in order: ``DD.MM.YYYY``, ``YYYY-MM``,
    ``MM.YYYY``/``MM-YY``, a month name with a two or four digit year
    (``янв-24``, ``января 2024``, ``Sep 2023``) and packed ``YYYYMM``.
    Labels without a month in 1..12 resolve to ``None``.
    """
    text = str(label).strip().lower()
    if not text:
        return None

    match = DAY_MONTH_YEAR_RE.search(text)
    if match:
        return _valid(int(match.group(3)), int(match.group(2)))

    match = ISO_MONTH_RE.search(text)
    if match:
        resolved = _valid(int(match.group(1)), int(match.group(2)))
        if resolved:
            return resolved

    match = MONTH_YEAR_RE.search(text)
    if match:
        resolved = _valid(_full_year(match.group(2)), int(match.group(1)))
        if resolved:
            return resolved

    month = _month_from_word(text)
    if month:
        year_match = YEAR_RE.search(text)
        if year_match:
            return _full_year(year_match.group(1)), month
        return None

    match = PACKED_RE.search(text)
    if match:
        return _valid(int(match.group(1)), int(match.group(2)))
    return None


def month_label(year: int, month: int) -> str:
    """Report column label, e.g. ``января-24``."""
    return f"{MONTHS_GENITIVE[month - 1]}-{year % 100:02d}"


def label_key(label: str) -> tuple[int, int] | None:
    """Inverse of :func:`month_label`; also accepts any resolvable label."""
    name, _, year = label.rpartition("-")
    if name in MONTHS_GENITIVE and year.isdigit():
        return _full_year(year), MONTHS_GENITIVE.index(name) + 1
    return resolve_label(label)


def month_range(start: date, end: date) -> list[tuple[int, int]]:
    """Inclusive list of ``(year, month)`` between two dates."""
    months: list[tuple[int, int]] = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((year, month))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


def sort_labels(labels: Iterable[str]) -> list[str]:
    """Unique labels in chronological order; unparseable labels go last."""
    unique = list(dict.fromkeys(labels))
    return sorted(unique, key=lambda item: label_key(item) or (9999, 99))
