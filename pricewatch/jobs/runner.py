"""Report job operations: create, step, stop and finalize."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pricewatch.ingest.spreadsheet import parse_rows
from pricewatch.jobs.errors import JobConflict, JobError, StaleJobError
from pricewatch.jobs.joblog import JobLog
from pricewatch.jobs.models import InputRow, JobStatus, ReportJob, RowResult
from pricewatch.jobs.store import JobStore
from pricewatch.logic.report_xlsx import observed_labels, range_labels, render_report
from pricewatch.utils.dates import today_in_tz, utcnow
from pricewatch.utils.storage import ReportStorage

logger = logging.getLogger(__name__)

SAVE_ATTEMPTS = 3


class InvalidRequest(JobError, ValueError):
    """Rejected job parameters."""


class Extractor(Protocol):
    async def extract(
        self,
        row: InputRow,
        *,
        period_from: date,
        period_to: date,
        include_stats: bool = True,
        log=None,
    ) -> RowResult: ...


class ReportRunner:
    def __init__(
        self,
        store: JobStore,
        extractor: Extractor,
        *,
        storage: ReportStorage | None = None,
        log_dir: Path | None = None,
        output_dir: Path | None = None,
        row_timeout: float | None = None,
        max_rows: int | None = None,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.storage = storage or ReportStorage.from_env()
        self.log_dir = log_dir
        self.output_dir = output_dir
        self.row_timeout = row_timeout
        self.max_rows = max_rows

    def log(self, job_id: str) -> JobLog:
        return JobLog(job_id, log_dir=self.log_dir)

    def create(
        self,
        content: bytes,
        filename: str,
        period_from: date,
        period_to: date,
        *,
        include_stats: bool = True,
    ) -> ReportJob:
        if period_from > period_to:
            raise InvalidRequest("Дата начала периода позже даты окончания")
        rows = parse_rows(content, filename, max_rows=self.max_rows)
        job = self.store.create(
            rows,
            period_from,
            period_to,
            original_filename=filename,
            include_stats=include_stats,
        )
        self.log(job.id).append(f"Задание создано: {job.total} строк, файл {filename}")
        return job

    async def step(self, job_id: str) -> ReportJob:
        """Advance the job by exactly one row.

        Terminal jobs come back unchanged. A result that arrives after a
        concurrent stop is still recorded and the partial report rebuilt.
        """
        job = self.store.get(job_id)
        if job.status.terminal:
            return job
        log = self.log(job_id)
        try:
            if job.status is JobStatus.PENDING:
                job.status = JobStatus.RUNNING
                job.started_at = utcnow()
                job = self.store.save(job)
                log.append("Обработка запущена")
            if job.complete:
                return self._finish(job, log)

            index = job.processed
            row = job.input_rows[index]
            log.append(f"Строка {index + 1}/{job.total}: {row.article} / {row.brand}")
            result = await self._extract(job, row, log)
            return self._record(job_id, index, result, log)
        except StaleJobError as exc:
            logger.info("Step for %s lost a race: %s", job_id, exc)
            return self.store.get(job_id)
        except SQLAlchemyError as exc:
            logger.exception("Step for %s failed", job_id)
            return self._fail(job_id, f"Ошибка базы данных: {exc}")

    async def _extract(self, job: ReportJob, row: InputRow, log: JobLog) -> RowResult:
        try:
            call = self.extractor.extract(
                row,
                period_from=job.period_from,
                period_to=job.period_to,
                include_stats=job.include_stats,
                log=log.append,
            )
            if self.row_timeout:
                return await asyncio.wait_for(call, timeout=self.row_timeout)
            return await call
        except asyncio.TimeoutError:
            log.append(f"{row.article} / {row.brand}: превышено время ожидания")
            return RowResult(article=row.article, brand=row.brand, error="timeout")
        except Exception as exc:  # per-row failures are recorded, not raised
            logger.warning("Skipping %s %s: %s", row.article, row.brand, exc)
            log.append(f"{row.article} / {row.brand}: ошибка {exc}")
            return RowResult(article=row.article, brand=row.brand, error=str(exc) or type(exc).__name__)

    def _record(self, job_id: str, index: int, result: RowResult, log: JobLog) -> ReportJob:
        """Append the result of row ``index`` to the stored job.

        The job is re-read on every attempt, so a stop that lands in between
        turns this into the canceled path instead of losing the result.
        """
        attempt = 0
        while True:
            fresh = self.store.get(job_id)
            if fresh.processed != index or fresh.status is JobStatus.ERROR:
                log.append(f"Строка {index + 1} уже учтена, результат отброшен")
                return fresh
            fresh.results.append(result)
            fresh.processed += 1
            fresh.last_id = fresh.cursor_for(index)
            try:
                if fresh.status is JobStatus.CANCELED:
                    return self._save_with_report(fresh, log, partial=True)
                if fresh.complete:
                    return self._finish(fresh, log)
                return self.store.save(fresh)
            except StaleJobError:
                attempt += 1
                if attempt >= SAVE_ATTEMPTS:
                    raise

    def _finish(self, job: ReportJob, log: JobLog) -> ReportJob:
        job.status = JobStatus.DONE
        job.finished_at = utcnow()
        job = self._save_with_report(job, log, partial=False)
        log.append(f"Готово: обработано {job.processed} из {job.total}")
        return job

    def _fail(self, job_id: str, message: str) -> ReportJob:
        job = self.store.get(job_id)
        if job.status.terminal:
            return job
        job.status = JobStatus.ERROR
        job.error = message
        job.finished_at = utcnow()
        job = self.store.save(job)
        self.log(job_id).append(message)
        return job

    def _render_report(self, job: ReportJob, log: JobLog, *, partial: bool) -> str | None:
        """Render and store the report, returning its reference.

        Failures are logged and give ``None``; they never block a status change.
        """
        if not job.results:
            return None
        try:
            labels = observed_labels(job.results) if partial else range_labels(job.period_from, job.period_to)
            path = render_report(
                job.id,
                job.input_rows,
                job.results,
                labels,
                today_in_tz(),
                output_dir=self.output_dir,
            )
            reference = self.storage.store(path)
        except Exception as exc:  # the report is best-effort
            logger.exception("Report for job %s failed", job.id)
            log.append(f"Не удалось сформировать отчёт: {exc}")
            return None
        log.append(f"Отчёт сохранён: {reference}")
        return reference

    def _save_with_report(self, job: ReportJob, log: JobLog, *, partial: bool) -> ReportJob:
        """Save a terminal status together with its report reference."""
        reference = self._render_report(job, log, partial=partial)
        if reference is not None:
            job.result_file = reference
        return self.store.save(job)

    def stop(self, job_id: str) -> ReportJob:
        """Cancel the job with a partial report built from what exists.

        A job that already reached a terminal status is returned as it is.
        """
        log = self.log(job_id)
        for attempt in range(SAVE_ATTEMPTS):
            job = self.store.get(job_id)
            if job.status.terminal:
                return job
            job.status = JobStatus.CANCELED
            job.finished_at = utcnow()
            try:
                job = self._save_with_report(job, log, partial=True)
                break
            except StaleJobError:
                if attempt == SAVE_ATTEMPTS - 1:
                    raise
        log.append(f"Остановлено: обработано {job.processed} из {job.total}")
        return job

    def finalize(self, job_id: str) -> ReportJob:
        """Build the full-range report for a complete job. Idempotent."""
        job = self.store.get(job_id)
        if job.status in (JobStatus.CANCELED, JobStatus.ERROR):
            raise JobConflict(f"Нельзя завершить задание в статусе {job.status.value}")
        if not job.complete or not job.results:
            raise JobConflict(f"Обработано {job.processed} из {job.total}")
        if job.status is JobStatus.DONE and job.result_file:
            return job
        log = self.log(job_id)
        if job.status is not JobStatus.DONE:
            return self._finish(job, log)
        reference = self._render_report(job, log, partial=False)
        if reference is None:
            return job
        job.result_file = reference
        return self.store.save(job)


def build_runner(engine: Engine | None = None) -> ReportRunner:
    """Runner wired from environment settings."""
    from pricewatch.db.session import create_engine_from_env
    from pricewatch.scraper.ai_offers import OfferAIClient
    from pricewatch.scraper.config import ScraperConfig
    from pricewatch.scraper.extractor import RowExtractor

    config = ScraperConfig.from_env()
    extractor = RowExtractor(config, ai_client=OfferAIClient.from_env())
    return ReportRunner(
        JobStore(engine or create_engine_from_env()),
        extractor,
        row_timeout=config.row_timeout_s,
    )
