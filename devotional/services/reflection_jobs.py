"""Background job management for reflection generation."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Sequence

from devotional.config import settings
from devotional.models import ReflectionJob, Verse
from devotional.services.job_store import JobStore, job_store
from devotional.services.scripture import ScriptureService, scripture_service

logger = logging.getLogger(__name__)

# Stored and shown to clients for every failure; causes go to the log only
GENERIC_ERROR = "Failed to generate reflection"


class ReflectionJobService:
    """Submit reflection jobs, run them detached, and report their status.

    A job is ``pending`` until its worker task moves it to ``completed`` or
    ``error``. Both are terminal. Completion is observed by reading the
    store; there is no push notification.
    """

    def __init__(
        self,
        store: JobStore | None = None,
        scripture: ScriptureService | None = None,
        max_age_seconds: float = settings.devotional_job_max_age_seconds,
        cleanup_delay_seconds: float = settings.devotional_job_cleanup_delay_seconds,
    ):
        self.store = store if store is not None else job_store
        self.scripture = scripture if scripture is not None else scripture_service
        self.max_age_seconds = max_age_seconds
        self.cleanup_delay_seconds = cleanup_delay_seconds
        self._tasks: set[asyncio.Task] = set()

    async def submit(self, topic: str, verses: Sequence[Verse]) -> ReflectionJob:
        """Create a pending job and start its worker without awaiting it."""
        job = self.store.create(topic, verses)
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._run(job.id, topic, list(verses)),
            name=f"devotional-reflection-{job.id}",
        )
        # The loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Queued reflection job %s (%d verses)", job.id, len(job.verses))
        return job

    async def _run(self, job_id: str, topic: str, verses: list[Verse]) -> None:
        """Worker body. Every exit path leaves the job in a terminal state."""

        def on_backoff(attempt: int, wait_seconds: float) -> None:
            retry_after = datetime.now(timezone.utc) + timedelta(seconds=wait_seconds)
            self.store.record_retry(job_id, attempt, retry_after)

        logger.info("Starting reflection generation for job %s", job_id)
        try:
            result = await self.scripture.compose_reflection(topic, verses, on_backoff=on_backoff)
            self.store.transition_to_completed(job_id, result)
        except Exception:  # noqa: BLE001
            logger.exception("Reflection generation failed for job %s", job_id)
            self.store.transition_to_error(job_id, GENERIC_ERROR)
            return
        logger.info("Stored reflection for job %s", job_id)

    def get_status(self, job_id: str) -> dict | None:
        """Client-facing status, or None if the job is unknown or evicted.

        Observing a terminal state schedules the record for deletion after a
        short grace period.
        """
        job = self.store.get(job_id)
        if job is None:
            return None
        if job.is_terminal:
            self.store.schedule_deletion(job_id, self.cleanup_delay_seconds)
        return job.public_view()

    async def wait_for(
        self,
        job_id: str,
        poll_interval: float = 1.0,
        max_attempts: int = 30,
    ) -> dict | None:
        """Poll the store until the job is terminal or attempts run out.

        Returns the last status seen (possibly still pending), or None if the
        job does not exist.
        """
        status = None
        for attempt in range(max_attempts):
            status = self.get_status(job_id)
            if status is None or status["status"] != "pending":
                return status
            if attempt < max_attempts - 1:
                await asyncio.sleep(poll_interval)
        return status

    def sweep(self) -> int:
        """Evict jobs older than the configured maximum age, whatever their state."""
        return self.store.sweep_expired(timedelta(seconds=self.max_age_seconds))

    async def join(self) -> None:
        """Wait for every in-flight worker to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)


# Global singleton
reflection_job_service = ReflectionJobService()
