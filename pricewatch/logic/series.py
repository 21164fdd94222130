"""Monthly request-count series parsing.

The statistics sub-page answers with one of several payload shapes: plain
JSON, JSON wrapped in a script or callback, a JavaScript chart config, or
DevExpress point literals. Each parser below takes the raw response body and
returns a list of points or ``None``; :func:`extract_series` tries them in
order and stops at the first one that yields anything.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Iterable, NamedTuple

from pricewatch.logic.months import resolve_label

logger = logging.getLogger(__name__)

PREFERRED_SERIES_RE = re.compile(r"запрос|поиск|просмотр", re.IGNORECASE)
OFFERS_SERIES_RE = re.compile(r"предложен", re.IGNORECASE)

CATEGORIES_RE = re.compile(r"[\"']?categories[\"']?\s*:\s*\[(.*?)\]", re.DOTALL)
SERIES_DATA_RE = re.compile(r"[\"']?series[\"']?\s*:\s*\[.*?[\"']?data[\"']?\s*:\s*\[(.*?)\]", re.DOTALL)
QUOTED_RE = re.compile(r"\"((?:[^\"\\]|\\.)*)\"|'((?:[^'\\]|\\.)*)'")
NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
SERIES_NAME_RE = re.compile(r"[\"']?name[\"']?\s*:\s*[\"']([^\"']+)[\"']")
DX_POINT_RE = re.compile(
    r"x\s*:\s*new\s+Date\(\s*(\d{4})\s*,\s*(\d{1,2})[^)]*\)[^{}]*?y\s*:\s*\[?\s*(-?\d+(?:\.\d+)?)",
    re.DOTALL,
)

MAX_EMBEDDED_ATTEMPTS = 200


class SeriesPoint(NamedTuple):
    year: int
    month: int
    value: float


Parser = Callable[[str], "list[SeriesPoint] | None"]


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, dict):
        for key in ("y", "value", "count"):
            if key in value:
                return _to_number(value[key])
        return None
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        return _to_number(value[1])
    if isinstance(value, str):
        cleaned = value.replace("\u00a0", "").replace(" ", "").replace(",", ".")
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    return None


def _zip_points(labels: Iterable[Any], values: Iterable[Any]) -> list[SeriesPoint]:
    points: list[SeriesPoint] = []
    for label, raw in zip(labels, values):
        resolved = resolve_label(str(label))
        value = _to_number(raw)
        if resolved is None or value is None:
            continue
        points.append(SeriesPoint(resolved[0], resolved[1], value))
    return points


def pick_series(named: list[tuple[str, Any]], *, prefer_last: bool = False) -> Any:
    """Choose the request-count series among several named ones.

    A name mentioning requests or searches wins; otherwise anything that is not
    the offers series; otherwise the first (or last) entry.
    """
    if not named:
        return None
    for name, payload in named:
        if PREFERRED_SERIES_RE.search(name or ""):
            return payload
    others = [payload for name, payload in named if not OFFERS_SERIES_RE.search(name or "")]
    pool = others or [payload for _, payload in named]
    return pool[-1] if prefer_last else pool[0]


def _points_from_chart(obj: dict[str, Any]) -> list[SeriesPoint] | None:
    categories = obj.get("categories")
    axis = obj.get("xAxis")
    if categories is None and isinstance(axis, dict):
        categories = axis.get("categories")
    if categories is None and isinstance(axis, list) and axis and isinstance(axis[0], dict):
        categories = axis[0].get("categories")
    series = obj.get("series")
    if not isinstance(categories, list) or not series:
        return None
    if isinstance(series, dict):
        series = [series]
    named = []
    for item in series:
        if isinstance(item, dict):
            named.append((str(item.get("name") or ""), item.get("data") or []))
        elif isinstance(item, list):
            named.append(("", item))
    data = pick_series(named)
    if not data:
        return None
    return _zip_points(categories, data) or None


def _points_from_items(items: list[Any]) -> list[SeriesPoint] | None:
    points: list[SeriesPoint] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        value = None
        for key in ("value", "count", "y", "requests"):
            if key in item:
                value = _to_number(item[key])
                break
        if value is None:
            continue
        if "year" in item and "month" in item:
            try:
                year, month = int(item["year"]), int(item["month"])
            except (TypeError, ValueError):
                continue
            if 1 <= month <= 12:
                points.append(SeriesPoint(year, month, value))
            continue
        label = item.get("label") or item.get("name") or item.get("x") or item.get("date")
        resolved = resolve_label(str(label)) if label is not None else None
        if resolved:
            points.append(SeriesPoint(resolved[0], resolved[1], value))
    return points or None


def _points_from_obj(obj: Any, depth: int = 0) -> list[SeriesPoint] | None:
    if depth > 6:
        return None
    if isinstance(obj, dict):
        points = _points_from_chart(obj)
        if points:
            return points
        for value in obj.values():
            if isinstance(value, (dict, list)):
                points = _points_from_obj(value, depth + 1)
                if points:
                    return points
        return None
    if isinstance(obj, list):
        points = _points_from_items(obj)
        if points:
            return points
        for value in obj:
            if isinstance(value, (dict, list)):
                points = _points_from_obj(value, depth + 1)
                if points:
                    return points
    return None


def parse_json_payload(text: str) -> list[SeriesPoint] | None:
    try:
        data = json.loads(text.strip())
    except (json.JSONDecodeError, ValueError):
        return None
    return _points_from_obj(data)


def parse_embedded_json(text: str) -> list[SeriesPoint] | None:
    decoder = json.JSONDecoder()
    attempts = 0
    for match in re.finditer(r"[\[{]", text):
        attempts += 1
        if attempts > MAX_EMBEDDED_ATTEMPTS:
            break
        try:
            data, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if not isinstance(data, (dict, list)):
            continue
        points = _points_from_obj(data)
        if points:
            return points
    return None


def parse_chart_config(text: str) -> list[SeriesPoint] | None:
    categories_match = CATEGORIES_RE.search(text)
    data_match = SERIES_DATA_RE.search(text)
    if not categories_match or not data_match:
        return None
    labels = [double or single for double, single in QUOTED_RE.findall(categories_match.group(1))]
    values = NUMBER_RE.findall(data_match.group(1))
    return _zip_points(labels, values) or None


def _dx_points(chunk: str) -> list[SeriesPoint]:
    points: list[SeriesPoint] = []
    for year, month0, value in DX_POINT_RE.findall(chunk):
        month = int(month0) + 1
        if not 1 <= month <= 12:
            continue
        points.append(SeriesPoint(int(year), month, _to_number(value)))
    return points


def parse_dx_points(text: str) -> list[SeriesPoint] | None:
    """DevExpress literals: ``x: new Date(2024, 0, 1), y: [15]`` (months are 0-based)."""
    names = list(SERIES_NAME_RE.finditer(text))
    if len(names) > 1:
        named = []
        for index, match in enumerate(names):
            end = names[index + 1].start() if index + 1 < len(names) else len(text)
            points = _dx_points(text[match.start():end])
            if points:
                named.append((match.group(1), points))
        chosen = pick_series(named, prefer_last=True)
        if chosen:
            return chosen
    return _dx_points(text) or None


PARSERS: list[Parser] = [
    parse_json_payload,
    parse_embedded_json,
    parse_chart_config,
    parse_dx_points,
]


def extract_series(text: str | None) -> list[SeriesPoint]:
    """Run the parser cascade over a response body."""
    if not text:
        return []
    for parser in PARSERS:
        points = parser(text)
        if points:
            logger.debug("Series parsed by %s: %s points", parser.__name__, len(points))
            return points
    return []


def series_to_stats(points: Iterable[SeriesPoint], label: Callable[[int, int], str]) -> dict[str, float]:
    """Collapse points into ``{label: value}``; later points win for the same month."""
    stats: dict[str, float] = {}
    for point in sorted(points, key=lambda p: (p.year, p.month)):
        stats[label(point.year, point.month)] = point.value
    return stats
