"""Pytest configuration and fixtures for devotional tests."""

import os
from typing import Callable

# Set test environment variables BEFORE importing app modules
# This ensures the Settings singleton loads with test values
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["DEVOTIONAL_LOG_LEVEL"] = "WARNING"

import httpx
import pytest
from openai import AsyncOpenAI

from devotional.models import Verse
from devotional.services import job_store, rate_limiter, reflection_job_service


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Give every test an empty job store and fresh rate-limit windows."""
    job_store.clear()
    rate_limiter.reset()
    yield
    job_store.clear()
    rate_limiter.reset()


@pytest.fixture
def no_sleep():
    """Recording replacement for asyncio.sleep."""
    waits: list[float] = []

    async def _sleep(seconds: float) -> None:
        waits.append(seconds)

    _sleep.waits = waits
    return _sleep


@pytest.fixture
def openai_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], AsyncOpenAI]:
    """Build an AsyncOpenAI client whose HTTP layer is a handler function."""

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key="test-openai-key",
            max_retries=0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    return _build


@pytest.fixture
def sample_verses() -> list[Verse]:
    return [
        Verse(
            reference="John 3:16",
            text="For God so loved the world that he gave his one and only Son.",
        ),
        Verse(
            reference="Romans 15:13",
            text="May the God of hope fill you with all joy and peace as you trust in him.",
        ),
    ]


@pytest.fixture
def fake_reflection(monkeypatch):
    """Replace the LLM reflection call on the shared scripture service."""
    calls: list[tuple[str, list[Verse]]] = []

    async def _compose(topic, verses, on_backoff=None):
        calls.append((topic, list(verses)))
        return f"A reflection on {topic}.\n\nPrayer: Amen."

    monkeypatch.setattr(reflection_job_service.scripture, "compose_reflection", _compose)
    return calls
