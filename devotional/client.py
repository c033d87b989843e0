#!/usr/bin/env python3
"""HTTP client for the devotional server.

Wraps the two browser-facing endpoints and implements the bounded polling
loop a client needs: the server has no timeout of its own for reflection
jobs, so the poll ceiling here is what turns a stuck job into a failure.
"""

import json
import os
import sys
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable

# Configuration
DEVOTIONAL_BASE_URL = os.environ.get("DEVOTIONAL_URL", "http://localhost:8787")
DEVOTIONAL_TIMEOUT = int(os.environ.get("DEVOTIONAL_TIMEOUT", "30"))


class DevotionalClientError(Exception):
    """Raised when the server returns an unexpected error."""
    pass


class ServiceUnavailable(DevotionalClientError):
    """Raised when the server is not reachable."""
    pass


class RateLimited(DevotionalClientError):
    """Raised on HTTP 429; ``retry_after`` is the server's hint in seconds."""

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ReflectionFailed(DevotionalClientError):
    """Raised when a reflection job ends in error or disappears."""
    pass


class ReflectionTimeout(DevotionalClientError):
    """Raised when a reflection is still pending after the last poll."""
    pass


def _decode(raw: bytes) -> dict:
    if not raw:
        return {}
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DevotionalClientError(f"Invalid JSON response from server: {e}")
    return data if isinstance(data, dict) else {}


def _request(method: str, path: str, data: dict[str, Any] | None = None) -> tuple[int, dict]:
    """Call an endpoint and return (status code, JSON body).

    Raises:
        ServiceUnavailable: If the server is not reachable
        RateLimited: If the server answers 429
        DevotionalClientError: If the body is not JSON
    """
    url = f"{DEVOTIONAL_BASE_URL}{path}"
    payload = json.dumps(data).encode("utf-8") if data is not None else None
    headers = {"Accept": "application/json"}
    if payload is not None:
        headers["Content-Type"] = "application/json"

    req = urllib.request.Request(url, data=payload, headers=headers, method=method)

    try:
        with urllib.request.urlopen(req, timeout=DEVOTIONAL_TIMEOUT) as response:
            return response.status, _decode(response.read())
    except urllib.error.HTTPError as e:
        body = _decode(e.read())
        if e.code == 429:
            retry_after = e.headers.get("Retry-After") if e.headers else None
            raise RateLimited(
                body.get("message", "Too many requests"),
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        return e.code, body
    except urllib.error.URLError as e:
        raise ServiceUnavailable(f"Cannot connect to devotional server at {DEVOTIONAL_BASE_URL}: {e}")


def check_health() -> bool:
    """Check if the server is available.

    Raises:
        ServiceUnavailable: If server is not reachable
    """
    req = urllib.request.Request(f"{DEVOTIONAL_BASE_URL}/health", method="GET")
    try:
        with urllib.request.urlopen(req, timeout=DEVOTIONAL_TIMEOUT) as response:
            return response.status == 200
    except urllib.error.HTTPError:
        return False
    except urllib.error.URLError as e:
        raise ServiceUnavailable(f"Cannot connect to devotional server at {DEVOTIONAL_BASE_URL}: {e}")


def search_verses(query: str) -> list[dict]:
    """Find verses for a topic.

    Returns:
        List of {"reference", "text"} dicts

    Raises:
        DevotionalClientError: If the topic was rejected or the search failed
    """
    status, body = _request(
        "POST",
        "/api/generate-reflection",
        {"type": "SEARCH_VERSES", "query": query},
    )
    if status != 200:
        raise DevotionalClientError(body.get("message", f"Verse search failed with HTTP {status}"))
    return body.get("verses", [])


def start_reflection(topic: str, verses: list[dict]) -> str:
    """Queue a reflection and return its job id."""
    status, body = _request("POST", "/api/reflection-status", {"topic": topic, "verses": verses})
    if status != 202 or "id" not in body:
        raise DevotionalClientError(body.get("message", f"Could not start reflection (HTTP {status})"))
    return body["id"]


def get_reflection_status(job_id: str) -> dict | None:
    """Current job status, or None if the job is unknown or expired."""
    query = urllib.parse.urlencode({"id": job_id})
    status, body = _request("GET", f"/api/reflection-status?{query}")
    if status == 404:
        return None
    if status != 200:
        raise DevotionalClientError(body.get("message", f"Status check failed with HTTP {status}"))
    return body


def wait_for_reflection(
    job_id: str,
    max_attempts: int = 30,
    interval: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Poll until the reflection is ready and return its text.

    Every poll, including one answered with 429, uses up an attempt.

    Raises:
        ReflectionFailed: The job ended in error or no longer exists
        ReflectionTimeout: Still pending after ``max_attempts`` polls
    """
    for attempt in range(max_attempts):
        try:
            status = get_reflection_status(job_id)
        except RateLimited as e:
            if attempt < max_attempts - 1:
                sleep(e.retry_after or interval)
            continue

        if status is None:
            raise ReflectionFailed("Reflection not found; it may have expired")
        if status.get("status") == "completed":
            return status.get("result") or ""
        if status.get("status") == "error":
            raise ReflectionFailed(status.get("error") or "An error occurred")

        if attempt < max_attempts - 1:
            sleep(interval)

    raise ReflectionTimeout(f"Reflection {job_id} still pending after {max_attempts} checks")


def generate_reflection(topic: str, max_attempts: int = 30, interval: float = 2.0) -> str:
    """Search verses for a topic, queue a reflection on them, and wait for it."""
    verses = search_verses(topic)
    job_id = start_reflection(topic, verses)
    return wait_for_reflection(job_id, max_attempts=max_attempts, interval=interval)


if __name__ == "__main__":
    topic = " ".join(sys.argv[1:]) or "hope"
    try:
        check_health()
        print(generate_reflection(topic))
    except DevotionalClientError as e:
        print(f"[devotional] ERROR: {e}", file=sys.stderr)
        sys.exit(1)
