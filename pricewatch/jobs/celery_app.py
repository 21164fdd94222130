"""Celery configuration for driving report jobs."""

from __future__ import annotations

import os

from celery import Celery
from celery.signals import setup_logging

from pricewatch.utils.dates import timezone_name
from pricewatch.utils.logging import configure_logging

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("pricewatch", broker=broker_url, backend=backend_url)
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "report-driver": {
        "task": "pricewatch.jobs.driver.run_driver",
        "schedule": float(os.environ.get("REPORT_DRIVER_INTERVAL", "15")),
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:  # pragma: no cover - executed by worker
    configure_logging()


@celery_app.task(name="pricewatch.jobs.driver.run_driver")
def run_driver_task():  # pragma: no cover - executed by worker
    import asyncio

    from pricewatch.jobs.driver import run_driver

    summary = asyncio.run(run_driver())
    return {"stepped": summary.stepped, "failed": summary.failed, "finished": summary.finished}


@celery_app.task(name="pricewatch.jobs.runner.step_report")
def step_report_task(job_id: str):  # pragma: no cover - executed by worker
    import asyncio

    from pricewatch.jobs.driver import run_step

    job = asyncio.run(run_step(job_id))
    return job.snapshot()
