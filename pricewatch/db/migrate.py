"""Apply the report job schema."""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pricewatch.db.session import create_engine_from_env
from pricewatch.utils.logging import configure_logging

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).with_name("schema.sql")


def split_statements(sql: str) -> Iterator[str]:
    """Split a DDL script on statement-terminating semicolons, skipping comments."""
    buffer: list[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("--"):
            continue
        buffer.append(line)
        if stripped.endswith(";"):
            yield "\n".join(buffer)
            buffer.clear()
    if buffer:
        yield "\n".join(buffer)


def run_migrations(engine: Engine, schema_path: pathlib.Path = SCHEMA_PATH) -> int:
    statements = list(split_statements(schema_path.read_text(encoding="utf-8")))
    with engine.begin() as conn:
        for stmt in statements:
            conn.execute(text(stmt))
    logger.info("Applied %s statements from %s", len(statements), schema_path.name)
    return len(statements)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create the report_jobs table")
    parser.add_argument("--print", dest="print_only", action="store_true", help="print statements and exit")
    args = parser.parse_args(argv)

    load_dotenv()
    configure_logging()
    if args.print_only:
        for stmt in split_statements(SCHEMA_PATH.read_text(encoding="utf-8")):
            print(stmt)
        return
    try:
        engine = create_engine_from_env()
        run_migrations(engine)
    except SQLAlchemyError as exc:
        logger.error("Migration failed: %s", exc)
        sys.exit(2)


if __name__ == "__main__":
    main()
