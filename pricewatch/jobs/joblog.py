"""Append-only per-job event log."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pricewatch.utils.dates import format_log_timestamp, utcnow

logger = logging.getLogger(__name__)

LOG_DIR = Path(os.environ.get("REPORT_LOG_DIR", "artifacts/logs"))


class JobLog:
    """Text log for a single job, tailed by byte offset.

    Writers only append; readers remember the offset they stopped at and ask
    for everything after it, so a reader never sees a line twice.
    """

    def __init__(self, job_id: str, *, log_dir: Path | None = None) -> None:
        self.job_id = job_id
        self.path = (log_dir or LOG_DIR) / f"report-{job_id}.log"

    def append(self, message: str) -> None:
        line = f"[{format_log_timestamp(utcnow())}] {message}"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
        logger.info("job %s: %s", self.job_id, message)

    def read_from(self, offset: int = 0) -> tuple[list[str], int]:
        """Return complete lines written after ``offset`` and the new offset."""
        if not self.path.exists():
            return [], offset
        with self.path.open("rb") as handle:
            handle.seek(offset)
            chunk = handle.read()
        end = chunk.rfind(b"\n")
        if end < 0:
            return [], offset
        complete = chunk[: end + 1]
        lines = complete.decode("utf-8", errors="replace").splitlines()
        return lines, offset + len(complete)
