from sqlalchemy import inspect

from pricewatch.db.migrate import SCHEMA_PATH, run_migrations, split_statements


def test_split_statements_skips_comments():
    sql = "-- header\nCREATE TABLE a (\n  id INTEGER\n);\n\nCREATE INDEX ix ON a (id);\n"
    assert list(split_statements(sql)) == ["CREATE TABLE a (\n  id INTEGER\n);", "CREATE INDEX ix ON a (id);"]


def test_bundled_schema_statements():
    statements = list(split_statements(SCHEMA_PATH.read_text(encoding="utf-8")))
    assert statements[0].startswith("CREATE TABLE IF NOT EXISTS report_jobs")
    assert len(statements) == 3


def test_run_migrations(engine, tmp_path):
    schema = tmp_path / "schema.sql"
    schema.write_text("CREATE TABLE IF NOT EXISTS extra (id INTEGER PRIMARY KEY);\n", encoding="utf-8")
    assert run_migrations(engine, schema) == 1
    assert "extra" in inspect(engine).get_table_names()
