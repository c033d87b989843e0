"""reflection_start tool for queueing a devotional reflection."""

from devotional.config import settings
from devotional.errors import InvalidRequest
from devotional.services import reflection_job_service
from devotional.services.sanitize import sanitize_text, validate_verses


async def reflection_start(topic: object, verses: object) -> dict:
    """Queue a devotional reflection and prayer on a topic.

    Generation runs in the background; poll ``reflection_status`` with the
    returned id.

    Args:
        topic: Free-text topic.
        verses: List of ``{reference, text}`` objects, typically from
            ``scripture_search``. Malformed entries are dropped and at most
            the configured number of verses is kept.

    Returns:
        dict with ``id`` and ``status`` ("pending").
    """
    topic = sanitize_text(topic, settings.devotional_max_topic_length)
    if not topic:
        raise InvalidRequest("missing topic")

    validated = validate_verses(verses)
    if not validated:
        raise InvalidRequest("no valid verses provided")

    job = await reflection_job_service.submit(topic, validated)
    return {"id": job.id, "status": job.status.value}
