"""reflection_status tools for polling background reflection jobs."""

from devotional.config import settings
from devotional.services import reflection_job_service
from devotional.services.sanitize import sanitize_text

MAX_JOB_ID_LENGTH = 64


async def reflection_status(job_id: object) -> dict | None:
    """Get the status of a reflection job, or None if unknown or expired."""
    job_id = sanitize_text(job_id, MAX_JOB_ID_LENGTH)
    if not job_id:
        return None
    return reflection_job_service.get_status(job_id)


async def reflection_wait(
    job_id: object,
    poll_interval: float = 1.0,
    max_attempts: int = 30,
) -> dict | None:
    """Wait for a reflection job to finish.

    ``max_attempts`` is capped at ``devotional_max_wait_attempts`` and
    ``poll_interval`` raised to ``devotional_min_poll_interval_seconds``, so a
    single call holds its handler for a bounded time.
    """
    job_id = sanitize_text(job_id, MAX_JOB_ID_LENGTH)
    if not job_id:
        return None
    return await reflection_job_service.wait_for(
        job_id,
        poll_interval=max(settings.devotional_min_poll_interval_seconds, poll_interval),
        max_attempts=min(settings.devotional_max_wait_attempts, max(1, max_attempts)),
    )
