"""XLSX report rendering."""

from __future__ import annotations

import os
from collections import defaultdict, deque
from datetime import date
from pathlib import Path
from typing import Iterable, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from pricewatch.jobs.models import InputRow, RowResult
from pricewatch.logic.months import month_label, month_range, sort_labels
from pricewatch.utils.dates import format_report_date

OUTPUT_DIR = Path(os.environ.get("REPORT_OUTPUT_DIR", "artifacts/reports"))

SHEET_TITLE = "Отчёт"
BASE_COLUMNS = ["Артикул", "Бренд", "Цена 1", "Цена 2", "Цена 3"]
NOTE_COLUMN = "Примечание AI"
PRICE_SLOTS = 3


def range_labels(period_from: date, period_to: date) -> list[str]:
    return [month_label(year, month) for year, month in month_range(period_from, period_to)]


def observed_labels(results: Iterable[RowResult]) -> list[str]:
    labels: list[str] = []
    for result in results:
        labels.extend(result.stats.keys())
    return sort_labels(labels)


def unique_prices(prices: Iterable[float]) -> list[float]:
    seen: list[float] = []
    for price in prices:
        if price not in seen:
            seen.append(price)
    return seen[:PRICE_SLOTS]


def _note(result: RowResult | None) -> str | None:
    if result is None:
        return None
    if result.ai:
        return result.ai
    if result.error:
        return f"Ошибка: {result.error}"
    return None


def build_rows(
    input_rows: Sequence[InputRow],
    results: Sequence[RowResult],
    labels: Sequence[str],
) -> list[list[object]]:
    """One report row per input row, in input order.

    Results are matched by normalized article and brand. Duplicate input rows
    consume matching results in order.
    """
    by_key: dict[str, deque[RowResult]] = defaultdict(deque)
    for result in results:
        by_key[result.key].append(result)

    rows: list[list[object]] = []
    for item in input_rows:
        queue = by_key.get(item.key)
        result = queue.popleft() if queue else None
        prices: list[object] = list(unique_prices(result.prices)) if result else []
        prices += [None] * (PRICE_SLOTS - len(prices))
        stats = result.stats if result else {}
        rows.append(
            [item.article, item.brand, *prices, *(stats.get(label) for label in labels), _note(result)]
        )
    return rows


def write_workbook(
    path: Path,
    rows: Sequence[Sequence[object]],
    labels: Sequence[str],
    report_date: date,
) -> Path:
    header = [*BASE_COLUMNS, *labels, NOTE_COLUMN]
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    ws.append([f"Отчёт ZZAP на {format_report_date(report_date)}"])
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(header))
    ws.cell(row=1, column=1).font = Font(bold=True, size=14)
    ws.cell(row=1, column=1).alignment = Alignment(horizontal="center")

    ws.append(header)
    for cell in ws[2]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(list(row))

    ws.column_dimensions["A"].width = 20
    ws.column_dimensions["B"].width = 18
    ws.freeze_panes = "C3"

    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


def render_report(
    job_id: str,
    input_rows: Sequence[InputRow],
    results: Sequence[RowResult],
    labels: Sequence[str],
    report_date: date,
    *,
    output_dir: Path | None = None,
) -> Path:
    path = (output_dir or OUTPUT_DIR) / f"{job_id}.xlsx"
    return write_workbook(path, build_rows(input_rows, results, labels), labels, report_date)
