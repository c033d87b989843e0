"""scripture_search tool for finding verses on a topic."""

from devotional.config import settings
from devotional.errors import InvalidRequest
from devotional.services import scripture_service
from devotional.services.sanitize import sanitize_text


async def scripture_search(query: object) -> dict:
    """Find Bible verses relevant to a topic, question, book or character.

    The topic is first checked for suitability; unsuitable topics raise
    TopicRejected with the model's reason.

    Args:
        query: Free-text topic from the user.

    Returns:
        dict with ``verses``: list of ``{reference, text}``.

    Example:
        >>> await scripture_search("forgiveness")
        {"verses": [{"reference": "Ephesians 4:32", "text": "Be kind..."}]}
    """
    query = sanitize_text(query, settings.devotional_max_topic_length)
    if not query:
        raise InvalidRequest("invalid query parameter")

    verses = await scripture_service.search(query)
    return {"verses": [verse.to_dict() for verse in verses]}
