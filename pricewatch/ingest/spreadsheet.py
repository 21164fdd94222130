"""Spreadsheet ingestion for report jobs."""

from __future__ import annotations

import csv
import io
import logging
import os
import re
from pathlib import PurePath

import pandas as pd

from pricewatch.jobs.models import InputRow

logger = logging.getLogger(__name__)

MAX_ROWS = int(os.environ.get("REPORT_MAX_ROWS", "500"))
HEADER_SCAN_ROWS = 5

ARTICLE_HEADER_RE = re.compile(r"артикул|номер|article|part|number|oem", re.IGNORECASE)
BRAND_HEADER_RE = re.compile(r"бренд|марка|производитель|brand|manufacturer", re.IGNORECASE)
STRIP_RE = re.compile(r"[\s\-‐-―]+")
CSV_DELIMITERS = (";", "\t", ",")


class SpreadsheetError(ValueError):
    """The uploaded file cannot be turned into report rows."""


def normalize_value(value: object) -> str:
    if value is None:
        return ""
    text = str(value)
    if text.lower() == "nan":
        return ""
    return STRIP_RE.sub("", text).upper()


def _decode(content: bytes) -> str:
    for encoding in ("utf-8-sig", "cp1251"):
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise SpreadsheetError("Не удалось определить кодировку CSV")


def _sniff_delimiter(text: str) -> str:
    first_line = text.splitlines()[0] if text else ""
    for delimiter in CSV_DELIMITERS:
        if delimiter in first_line:
            return delimiter
    return ","


def read_table(content: bytes, filename: str) -> pd.DataFrame:
    suffix = PurePath(filename or "").suffix.lower()
    try:
        if suffix == ".csv":
            text = _decode(content)
            return pd.read_csv(
                io.StringIO(text),
                sep=_sniff_delimiter(text),
                header=None,
                dtype=str,
                keep_default_na=False,
                quoting=csv.QUOTE_MINIMAL,
                skip_blank_lines=True,
            )
        if suffix == ".xlsx":
            return pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=str, engine="openpyxl")
    except (ValueError, KeyError, OSError, pd.errors.ParserError) as exc:
        raise SpreadsheetError(f"Не удалось прочитать файл: {exc}") from exc
    raise SpreadsheetError(f"Неподдерживаемый формат файла: {suffix or filename}")


def find_header(frame: pd.DataFrame) -> tuple[int, int, int]:
    """Locate the header row among the first rows: ``(row, article_col, brand_col)``."""
    for row_index in range(min(HEADER_SCAN_ROWS, len(frame))):
        article_col = brand_col = None
        for col_index, value in enumerate(frame.iloc[row_index].tolist()):
            cell = str(value or "")
            if brand_col is None and BRAND_HEADER_RE.search(cell):
                brand_col = col_index
            elif article_col is None and ARTICLE_HEADER_RE.search(cell):
                article_col = col_index
        if article_col is not None and brand_col is not None:
            return row_index, article_col, brand_col
    raise SpreadsheetError("Не найдены колонки «Артикул» и «Бренд»")


def parse_rows(content: bytes, filename: str, *, max_rows: int | None = None) -> list[InputRow]:
    """Parse an upload into normalized rows.

    Rows with an empty article or brand are dropped and the result is capped
    at ``max_rows`` without error.
    """
    limit = max_rows or MAX_ROWS
    frame = read_table(content, filename)
    if frame.empty:
        raise SpreadsheetError("Файл пуст")
    header_row, article_col, brand_col = find_header(frame)

    rows: list[InputRow] = []
    for values in frame.iloc[header_row + 1:].itertuples(index=False, name=None):
        article = normalize_value(values[article_col]) if article_col < len(values) else ""
        brand = normalize_value(values[brand_col]) if brand_col < len(values) else ""
        if not article or not brand:
            continue
        rows.append(InputRow(article=article, brand=brand))
        if len(rows) >= limit:
            logger.info("Truncated %s to %s rows", filename, limit)
            break
    if not rows:
        raise SpreadsheetError("В файле нет строк с артикулом и брендом")
    return rows
