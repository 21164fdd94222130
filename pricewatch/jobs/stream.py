"""Server-Sent Events progress stream for a report job."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable

from pricewatch.jobs.errors import JobNotFound
from pricewatch.jobs.joblog import JobLog
from pricewatch.jobs.store import JobStore

logger = logging.getLogger(__name__)

POLL_SECONDS = 1.0
KEEPALIVE_SECONDS = 20.0
KEEPALIVE_FRAME = ":\n\n"


def format_event(data: Any, event: str | None = None) -> str:
    payload = json.dumps(data, ensure_ascii=False, default=str)
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {payload}\n\n"


async def progress_events(
    store: JobStore,
    job_id: str,
    *,
    log: JobLog | None = None,
    poll_interval: float = POLL_SECONDS,
    keepalive: float = KEEPALIVE_SECONDS,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncIterator[str]:
    """Yield SSE frames until the job reaches a terminal status.

    The job record is polled and re-sent whenever it changed; log lines
    appended since the previous poll are sent as ``log`` events. The log is
    drained once more after the terminal snapshot.
    """
    log = log or JobLog(job_id)
    offset = 0
    last_marker = None
    last_sent = clock()
    while True:
        if is_disconnected is not None and await is_disconnected():
            logger.debug("Stream client for %s went away", job_id)
            return
        try:
            job = await asyncio.to_thread(store.get, job_id)
        except JobNotFound:
            yield format_event({"error": "not found", "id": job_id}, "error")
            return
        lines, offset = log.read_from(offset)
        if lines:
            yield format_event({"lines": lines}, "log")
            last_sent = clock()
        marker = (job.updated_at, job.version)
        if marker != last_marker:
            yield format_event(job.snapshot(), "job")
            last_marker = marker
            last_sent = clock()
        if job.status.terminal:
            lines, offset = log.read_from(offset)
            if lines:
                yield format_event({"lines": lines}, "log")
            return
        if clock() - last_sent >= keepalive:
            yield KEEPALIVE_FRAME
            last_sent = clock()
        await asyncio.sleep(poll_interval)
