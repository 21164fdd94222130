"""Drives active report jobs forward with a bounded worker pool."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Iterable

from dotenv import load_dotenv

from pricewatch.jobs.models import ReportJob
from pricewatch.jobs.runner import ReportRunner, build_runner

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = int(os.environ.get("REPORT_DRIVER_CONCURRENCY", "2"))


@dataclass(slots=True)
class DriveSummary:
    stepped: int = 0
    failed: int = 0
    finished: list[str] = field(default_factory=list)


async def drive_jobs(runner: ReportRunner, job_ids: Iterable[str], *, concurrency: int = DEFAULT_CONCURRENCY) -> DriveSummary:
    """Step every job once. Jobs are independent, so a failing one only bumps ``failed``."""
    queue: asyncio.Queue[str] = asyncio.Queue()
    for job_id in dict.fromkeys(job_ids):
        queue.put_nowait(job_id)
    summary = DriveSummary()

    async def worker() -> None:
        while True:
            try:
                job_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                job = await runner.step(job_id)
            except Exception as exc:
                summary.failed += 1
                logger.warning("Step failed for %s: %s", job_id, exc)
            else:
                summary.stepped += 1
                if job.status.terminal:
                    summary.finished.append(job_id)
            finally:
                queue.task_done()

    workers = max(1, min(concurrency, queue.qsize()))
    await asyncio.gather(*(worker() for _ in range(workers)))
    return summary


async def drive_active(runner: ReportRunner, *, concurrency: int = DEFAULT_CONCURRENCY) -> DriveSummary:
    job_ids = runner.store.list_active_ids()
    if not job_ids:
        return DriveSummary()
    summary = await drive_jobs(runner, job_ids, concurrency=concurrency)
    logger.info(
        "Driver pass: %s stepped, %s failed, %s finished",
        summary.stepped,
        summary.failed,
        len(summary.finished),
    )
    return summary


async def close_runner(runner: ReportRunner) -> None:
    ai_client = getattr(runner.extractor, "ai_client", None)
    if ai_client is not None:
        await ai_client.close()


async def run_driver() -> DriveSummary:
    load_dotenv()
    runner = build_runner()
    try:
        return await drive_active(runner)
    finally:
        await close_runner(runner)


async def run_step(job_id: str, runner: ReportRunner | None = None) -> ReportJob:
    """Advance one job with a runner that is closed afterwards."""
    runner = runner or build_runner()
    try:
        return await runner.step(job_id)
    finally:
        await close_runner(runner)


if __name__ == "__main__":
    asyncio.run(run_driver())
