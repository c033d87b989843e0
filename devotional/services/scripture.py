"""Scripture service: topic evaluation, verse search and reflection writing via OpenAI."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

import httpx
import openai
from openai import AsyncOpenAI

from devotional.config import settings
from devotional.errors import ConfigurationError, InvalidRequest, TopicRejected, UpstreamResponseError
from devotional.models.verse import TopicEvaluation, Verse
from devotional.services.recovery import (
    extract_verses_from_text,
    infer_topic_evaluation,
    recover_payload,
)
from devotional.services.retry import BackoffCallback, call_with_retry
from devotional.services.sanitize import validate_verses

logger = logging.getLogger(__name__)


EVALUATION_SYSTEM_PROMPT = """You decide whether a topic or question can be meaningfully addressed from a biblical or Christian perspective: through scripture, Christian theology and ethics, or faith-based guidance grounded in the Bible.

Topics that are not explicitly biblical (modern issues, personal struggles, public figures) qualify when biblical principles can speak to them. Adult content, explicit material, hate speech and requests intended to harm never qualify.

Respond with a JSON object: {"canBeAddressed": true or false, "reason": "one short sentence"}."""

VERSE_SYSTEM_PROMPT = """You are a Bible reference assistant. For the given topic, question or biblical theme, return the 5-7 most relevant Bible verses in modern English (NIV, ESV or NLT).

Prefer verses that offer wisdom, guidance, comfort or insight. For a specific Bible story, include the verses that tell it. Draw on both Testaments where appropriate. Make sure every reference is accurate and the text matches it.

Respond with a JSON object: {"verses": [{"reference": "John 3:16", "text": "For God so loved the world..."}]}"""

REFLECTION_SYSTEM_PROMPT = """You are a Christian devotional writer with deep theological understanding. Write original, contemplative reflections on spiritual topics rather than verse-by-verse explanations. Weave scripture references naturally into the text and end with a heartfelt prayer tied to the topic and the reader's spiritual journey."""


class ScriptureService:
    """Client for the three LLM calls behind verse search and reflections."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        max_retries: int = settings.devotional_max_retries,
        initial_delay: float = settings.devotional_initial_retry_delay_seconds,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._sleep = sleep

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily initialize the OpenAI client; fails fast without an API key."""
        if self._client is None:
            if not settings.openai_api_key:
                logger.error("OPENAI_API_KEY is not configured")
                raise ConfigurationError("OPENAI_API_KEY is not configured")
            # Backoff is owned by call_with_retry, not the SDK
            self._client = AsyncOpenAI(api_key=settings.openai_api_key, max_retries=0)
        return self._client

    async def evaluate_topic(self, query: str) -> TopicEvaluation:
        """Ask whether ``query`` can be addressed from a biblical perspective."""
        content = await self._complete(
            "Topic evaluation",
            model=settings.devotional_evaluation_model,
            messages=[
                {"role": "system", "content": EVALUATION_SYSTEM_PROMPT},
                {"role": "user", "content": f'Topic: "{query}"'},
            ],
            temperature=0.1,
            response_format={"type": "json_object"},
            timeout=settings.devotional_evaluation_timeout_seconds,
        )

        evaluation = recover_payload(content, _coerce_evaluation)
        if evaluation is None:
            logger.warning("Topic evaluation was not structured; using keyword fallback")
            evaluation = infer_topic_evaluation(content)
        return evaluation

    async def find_verses(self, query: str) -> list[Verse]:
        """Retrieve relevant verses for ``query``.

        Raises:
            UpstreamResponseError: No usable verse could be recovered.
        """
        content = await self._complete(
            "Verse search",
            model=settings.devotional_verse_model,
            messages=[
                {"role": "system", "content": VERSE_SYSTEM_PROMPT},
                {"role": "user", "content": f'Topic: "{query}"'},
            ],
            temperature=0.3,
            response_format={"type": "json_object"},
            timeout=settings.devotional_verse_timeout_seconds,
        )

        verses = recover_payload(content, _coerce_verses)
        if verses is None:
            logger.warning("Verse payload was not structured; extracting references from text")
            verses = validate_verses(extract_verses_from_text(content))
        if not verses:
            raise UpstreamResponseError("no Bible verses found in model response")

        logger.info("Found %d verses for query", len(verses))
        return verses

    async def search(self, query: str) -> list[Verse]:
        """Evaluate the topic, then find verses for it.

        Raises:
            TopicRejected: The model judged the topic unsuitable.
        """
        evaluation = await self.evaluate_topic(query)
        if not evaluation.can_be_addressed:
            logger.info("Topic cannot be addressed biblically: %s", evaluation.reason)
            raise TopicRejected(evaluation.reason)
        return await self.find_verses(query)

    async def compose_reflection(
        self,
        topic: str,
        verses: Sequence[Verse],
        on_backoff: BackoffCallback | None = None,
    ) -> str:
        """Write a devotional reflection and closing prayer on ``topic``."""
        if not topic:
            raise InvalidRequest("missing topic for reflection")
        verses = list(verses)[: settings.devotional_max_verses]
        if not verses:
            raise InvalidRequest("missing verses for reflection")

        verses_text = "\n".join(verse.format_line() for verse in verses)
        prompt = f"""Write a deep, thoughtful Christian reflection on the topic of "{topic}".

Relevant scriptures for this topic include:

{verses_text}

Do not simply explain these verses. Reflect on the topic itself: its theological implications, personal application and spiritual growth, drawing on biblical wisdom beyond the verses listed. End with a meaningful prayer related to this topic."""

        content = await self._complete(
            "Reflection generation",
            on_backoff=on_backoff,
            model=settings.devotional_reflection_model,
            messages=[
                {"role": "system", "content": REFLECTION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.7,
            timeout=settings.devotional_reflection_timeout_seconds,
        )
        if not content.strip():
            raise UpstreamResponseError("empty reflection from model")
        return content

    async def _complete(
        self,
        label: str,
        on_backoff: BackoffCallback | None = None,
        **params: Any,
    ) -> str:
        client = self.client

        async def request() -> httpx.Response:
            try:
                raw = await client.chat.completions.with_raw_response.create(**params)
            except openai.APIStatusError as exc:
                return exc.response
            return raw.http_response

        response = await call_with_retry(
            request,
            max_retries=self._max_retries,
            initial_delay=self._initial_delay,
            sleep=self._sleep,
            on_backoff=on_backoff,
            label=label,
        )
        return _message_content(response)


def _message_content(response: httpx.Response) -> str:
    """``choices[0].message.content`` of a chat completion response."""
    try:
        data = response.json()
    except ValueError as exc:
        logger.error("Chat completion body is not JSON: %s", response.text[:200])
        raise UpstreamResponseError("invalid response format from OpenAI API") from exc

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise UpstreamResponseError("chat completion missing message content") from exc
    if not isinstance(content, str) or not content:
        raise UpstreamResponseError("chat completion missing message content")
    return content


def _coerce_evaluation(candidate: Any) -> TopicEvaluation | None:
    if not isinstance(candidate, dict):
        return None
    value = candidate.get("canBeAddressed", candidate.get("can_be_addressed"))
    if not isinstance(value, bool):
        return None
    reason = candidate.get("reason")
    return TopicEvaluation(can_be_addressed=value, reason=reason if isinstance(reason, str) else "")


def _coerce_verses(candidate: Any) -> list[Verse] | None:
    if isinstance(candidate, dict):
        candidate = candidate.get("verses")
    return validate_verses(candidate) or None


# Global singleton instance
scripture_service = ScriptureService()
