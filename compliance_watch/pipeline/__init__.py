"""Pipeline entrypoints for legislative monitoring."""

from .lock import MONITORING_LOCK, JobLock, JobLockError
from .run import build_connectors, build_criteria, run_pipeline, run_pipeline_openai, run_status

__all__ = [
    "JobLock",
    "JobLockError",
    "MONITORING_LOCK",
    "build_connectors",
    "build_criteria",
    "run_pipeline",
    "run_pipeline_openai",
    "run_status",
]
