"""Report job exceptions."""

from __future__ import annotations


class JobError(Exception):
    """Base class for report job failures."""


class JobNotFound(JobError, LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Report job {job_id} not found")
        self.job_id = job_id


class JobConflict(JobError):
    """The operation is not allowed in the job's current state."""


class InvalidTransition(JobConflict):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move job from {current} to {target}")
        self.current = current
        self.target = target


class StaleJobError(JobConflict):
    """Another writer saved the job after it was read."""
