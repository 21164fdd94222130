import pytest

from conftest import xlsx_bytes
from pricewatch.ingest.spreadsheet import SpreadsheetError, normalize_value, parse_rows


def test_xlsx_rows_are_normalized():
    content = xlsx_bytes(
        [
            ("Артикул", "Бренд", "Комментарий"),
            ("oc 90", "Knecht", "масляный"),
            ("W-712/52", " mann ", None),
        ]
    )
    rows = parse_rows(content, "price.xlsx")
    assert [(row.article, row.brand) for row in rows] == [("OC90", "KNECHT"), ("W712/52", "MANN")]
    assert rows[0].key == "OC90|KNECHT"


def test_header_may_sit_below_a_title_row():
    content = xlsx_bytes(
        [
            ("Заявка на мониторинг", None),
            ("Производитель", "Номер детали"),
            ("TRW", "GDB1330"),
        ]
    )
    rows = parse_rows(content, "request.xlsx")
    assert [(row.article, row.brand) for row in rows] == [("GDB1330", "TRW")]


def test_csv_with_semicolons_and_bom():
    content = "\ufeffArticle;Brand\nOC90;Knecht\n;MANN\nW71252;\n".encode("utf-8")
    rows = parse_rows(content, "items.csv")
    assert [(row.article, row.brand) for row in rows] == [("OC90", "KNECHT")]


def test_csv_in_cp1251():
    content = "Артикул,Бренд\nOC90,Кнехт\n".encode("cp1251")
    rows = parse_rows(content, "items.csv")
    assert rows[0].brand == "КНЕХТ"


def test_rows_are_capped_without_error():
    content = xlsx_bytes([("Артикул", "Бренд")] + [(f"A{i}", "BOSCH") for i in range(10)])
    rows = parse_rows(content, "big.xlsx", max_rows=4)
    assert [row.article for row in rows] == ["A0", "A1", "A2", "A3"]


def test_missing_columns_is_an_error():
    content = xlsx_bytes([("Наименование", "Количество"), ("Фильтр", 2)])
    with pytest.raises(SpreadsheetError):
        parse_rows(content, "bad.xlsx")


def test_no_usable_rows_is_an_error():
    content = xlsx_bytes([("Артикул", "Бренд"), ("OC90", None)])
    with pytest.raises(SpreadsheetError):
        parse_rows(content, "empty.xlsx")


def test_unsupported_extension():
    with pytest.raises(SpreadsheetError):
        parse_rows(b"whatever", "notes.txt")


def test_normalize_value():
    assert normalize_value(" 0 986 – 452 ") == "0986452"
    assert normalize_value(None) == ""
    assert normalize_value(float("nan")) == ""
