"""SQLAlchemy Core table definitions."""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Index, Integer, MetaData, String, Table, Text

metadata = MetaData()

report_jobs = Table(
    "report_jobs",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("status", String(16), nullable=False),
    Column("period_from", Date, nullable=False),
    Column("period_to", Date, nullable=False),
    Column("total", Integer, nullable=False),
    Column("processed", Integer, nullable=False, default=0),
    Column("input_rows", JSON, nullable=False),
    Column("results", JSON, nullable=False),
    Column("last_id", Text),
    Column("result_file", Text),
    Column("error", Text),
    Column("original_filename", Text),
    Column("include_stats", Boolean, nullable=False, default=True),
    Column("version", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Column("started_at", DateTime),
    Column("finished_at", DateTime),
    Index("ix_report_jobs_created_at", "created_at"),
    Index("ix_report_jobs_status", "status"),
)
