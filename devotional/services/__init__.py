"""Services layer for the devotional server."""

from devotional.services.job_store import InMemoryJobStore, JobStore, job_store
from devotional.services.rate_limiter import RateLimiter, rate_limiter
from devotional.services.reflection_jobs import ReflectionJobService, reflection_job_service
from devotional.services.scripture import ScriptureService, scripture_service

__all__ = [
    "InMemoryJobStore",
    "JobStore",
    "job_store",
    "RateLimiter",
    "rate_limiter",
    "ReflectionJobService",
    "reflection_job_service",
    "ScriptureService",
    "scripture_service",
]
