"""Persistence for report jobs.

``JobStore.save`` is the only write path after creation. It re-reads the stored
status and version inside the same transaction, rejects transitions the state
table does not allow, and bumps ``version`` so that two racing writers cannot
both succeed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Iterable

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine, RowMapping

from pricewatch.db.tables import report_jobs
from pricewatch.jobs.errors import InvalidTransition, JobConflict, JobNotFound, StaleJobError
from pricewatch.jobs.models import InputRow, JobStatus, ReportJob, RowResult, can_transition
from pricewatch.utils.dates import utcnow

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.RUNNING.value)


def _row_to_job(row: RowMapping) -> ReportJob:
    return ReportJob(
        id=row["id"],
        status=JobStatus(row["status"]),
        period_from=row["period_from"],
        period_to=row["period_to"],
        total=row["total"],
        processed=row["processed"],
        input_rows=[InputRow(article=item["article"], brand=item["brand"]) for item in row["input_rows"] or []],
        results=[RowResult.from_dict(item) for item in row["results"] or []],
        last_id=row["last_id"],
        result_file=row["result_file"],
        error=row["error"],
        original_filename=row["original_filename"],
        include_stats=bool(row["include_stats"]),
        version=row["version"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
    )


def _mutable_values(job: ReportJob) -> dict[str, Any]:
    return {
        "status": job.status.value,
        "processed": job.processed,
        "results": [result.to_dict() for result in job.results],
        "last_id": job.last_id,
        "result_file": job.result_file,
        "error": job.error,
        "started_at": job.started_at,
        "finished_at": job.finished_at,
    }


def _check_counters(job: ReportJob) -> None:
    if not 0 <= job.processed <= job.total:
        raise JobConflict(f"processed={job.processed} outside 0..{job.total}")
    if len(job.results) > job.processed:
        raise JobConflict(f"{len(job.results)} results for processed={job.processed}")


class JobStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(
        self,
        rows: Iterable[InputRow],
        period_from: date,
        period_to: date,
        *,
        original_filename: str | None = None,
        include_stats: bool = True,
    ) -> ReportJob:
        input_rows = list(rows)
        now = utcnow()
        job = ReportJob(
            id=uuid.uuid4().hex,
            status=JobStatus.PENDING,
            period_from=period_from,
            period_to=period_to,
            total=len(input_rows),
            input_rows=input_rows,
            original_filename=original_filename,
            include_stats=include_stats,
            created_at=now,
            updated_at=now,
        )
        values = _mutable_values(job)
        values.update(
            {
                "id": job.id,
                "period_from": period_from,
                "period_to": period_to,
                "total": job.total,
                "input_rows": [{"article": row.article, "brand": row.brand} for row in input_rows],
                "original_filename": original_filename,
                "include_stats": include_stats,
                "version": job.version,
                "created_at": now,
                "updated_at": now,
            }
        )
        with self.engine.begin() as conn:
            conn.execute(insert(report_jobs).values(**values))
        logger.info("Created report job %s with %s rows", job.id, job.total)
        return job

    def get(self, job_id: str) -> ReportJob:
        with self.engine.connect() as conn:
            row = conn.execute(select(report_jobs).where(report_jobs.c.id == job_id)).mappings().first()
        if row is None:
            raise JobNotFound(job_id)
        return _row_to_job(row)

    def list_recent(self, limit: int = 20) -> list[ReportJob]:
        query = select(report_jobs).order_by(report_jobs.c.created_at.desc()).limit(limit)
        with self.engine.connect() as conn:
            return [_row_to_job(row) for row in conn.execute(query).mappings()]

    def list_active_ids(self) -> list[str]:
        query = (
            select(report_jobs.c.id)
            .where(report_jobs.c.status.in_(ACTIVE_STATUSES))
            .order_by(report_jobs.c.created_at)
        )
        with self.engine.connect() as conn:
            return [row[0] for row in conn.execute(query)]

    def save(self, job: ReportJob) -> ReportJob:
        """Persist mutable fields.

        A stale copy raises ``StaleJobError`` before the transition table is
        consulted, so callers can re-read and retry.
        """
        _check_counters(job)
        now = utcnow()
        with self.engine.begin() as conn:
            current = conn.execute(
                select(report_jobs.c.status, report_jobs.c.version)
                .where(report_jobs.c.id == job.id)
                .with_for_update()
            ).first()
            if current is None:
                raise JobNotFound(job.id)
            if current.version != job.version:
                raise StaleJobError(f"Job {job.id} changed (version {current.version}, have {job.version})")
            stored_status = JobStatus(current.status)
            if not can_transition(stored_status, job.status):
                raise InvalidTransition(stored_status.value, job.status.value)
            values = _mutable_values(job)
            values.update({"version": job.version + 1, "updated_at": now})
            result = conn.execute(
                update(report_jobs)
                .where(report_jobs.c.id == job.id, report_jobs.c.version == job.version)
                .values(**values)
            )
            if result.rowcount != 1:
                raise StaleJobError(f"Job {job.id} changed during save")
        job.version += 1
        job.updated_at = now
        return job
