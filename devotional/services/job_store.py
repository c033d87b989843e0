"""Ephemeral storage for reflection jobs.

``JobStore`` is the seam for swapping storage. A horizontally scaled
deployment needs an implementation backed by a shared key-value cache;
``InMemoryJobStore`` only covers a single process.
"""

import asyncio
import logging
import secrets
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from devotional.models import ReflectionJob, ReflectionJobStatus, Verse

logger = logging.getLogger(__name__)


def generate_job_id() -> str:
    """Millisecond timestamp plus 64 random bits, both hex encoded."""
    return f"{int(time.time() * 1000):x}{secrets.token_hex(8)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStore(ABC):
    """Create/read/transition/evict contract for reflection jobs."""

    @abstractmethod
    def create(self, topic: str, verses: Sequence[Verse]) -> ReflectionJob:
        """Insert a pending job and return it."""

    @abstractmethod
    def get(self, job_id: str) -> ReflectionJob | None:
        """Return the job or None if it does not exist (or was evicted)."""

    @abstractmethod
    def transition_to_completed(self, job_id: str, result: str) -> ReflectionJob:
        """Mark a job completed; recreates a minimal record if it was evicted."""

    @abstractmethod
    def transition_to_error(self, job_id: str, error: str) -> ReflectionJob:
        """Mark a job failed; recreates a minimal record if it was evicted."""

    @abstractmethod
    def record_retry(self, job_id: str, retry_count: int, retry_after: datetime) -> None:
        """Note an upstream backoff on a pending job."""

    @abstractmethod
    def sweep_expired(self, max_age: timedelta) -> int:
        """Delete jobs started more than ``max_age`` ago. Returns count removed."""

    @abstractmethod
    def schedule_deletion(self, job_id: str, delay: float) -> None:
        """Delete a job after ``delay`` seconds."""

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Delete a job now. Returns whether it existed."""


class InMemoryJobStore(JobStore):
    """Process-local dict of immutable job records.

    Records are replaced whole, never mutated in place, so a status read that
    races the worker's transition sees either ``pending`` or the final state.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = generate_job_id,
    ):
        self._jobs: dict[str, ReflectionJob] = {}
        self._deletions: dict[str, asyncio.TimerHandle] = {}
        self._clock = clock
        self._id_factory = id_factory

    def create(self, topic: str, verses: Sequence[Verse]) -> ReflectionJob:
        job_id = self._id_factory()
        while job_id in self._jobs:
            job_id = self._id_factory()
        job = ReflectionJob(
            id=job_id,
            topic=topic,
            verses=tuple(verses),
            started_at=self._clock(),
        )
        self._jobs[job_id] = job
        return job

    def get(self, job_id: str) -> ReflectionJob | None:
        return self._jobs.get(job_id)

    def transition_to_completed(self, job_id: str, result: str) -> ReflectionJob:
        return self._transition(job_id, lambda job, now: job.complete(result, now))

    def transition_to_error(self, job_id: str, error: str) -> ReflectionJob:
        return self._transition(job_id, lambda job, now: job.fail(error, now))

    def _transition(
        self,
        job_id: str,
        apply: Callable[[ReflectionJob, datetime], ReflectionJob],
    ) -> ReflectionJob:
        now = self._clock()
        job = self._jobs.get(job_id)
        if job is None:
            # Late completion after eviction: keep a coherent orphan record
            logger.info("Job %s no longer in store, recreating terminal record", job_id)
            job = ReflectionJob(id=job_id, started_at=now)
        elif job.is_terminal:
            logger.warning("Ignoring transition of job %s already %s", job_id, job.status.value)
            return job

        updated = apply(job, now)
        self._jobs[job_id] = updated
        return updated

    def record_retry(self, job_id: str, retry_count: int, retry_after: datetime) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.status is not ReflectionJobStatus.PENDING:
            return
        self._jobs[job_id] = job.with_retry(retry_count, retry_after)

    def sweep_expired(self, max_age: timedelta) -> int:
        cutoff = self._clock() - max_age
        expired = [job_id for job_id, job in self._jobs.items() if job.started_at < cutoff]
        for job_id in expired:
            self.delete(job_id)
        if expired:
            logger.info("Swept %d expired reflection jobs", len(expired))
        return len(expired)

    def schedule_deletion(self, job_id: str, delay: float) -> None:
        if job_id in self._deletions or job_id not in self._jobs:
            return
        loop = asyncio.get_running_loop()
        self._deletions[job_id] = loop.call_later(delay, self.delete, job_id)

    def delete(self, job_id: str) -> bool:
        handle = self._deletions.pop(job_id, None)
        if handle is not None:
            handle.cancel()
        return self._jobs.pop(job_id, None) is not None

    def clear(self) -> None:
        for handle in self._deletions.values():
            handle.cancel()
        self._deletions.clear()
        self._jobs.clear()

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs


# Global singleton
job_store = InMemoryJobStore()
