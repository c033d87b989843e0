"""Error classes for the devotional reflection server.

The HTTP facade maps these to status codes; the reflection job worker maps
every one of them to the same opaque stored error. Messages carried here are
for server logs and are never echoed to clients.
"""


class DevotionalError(Exception):
    """Base exception for the devotional server."""
    pass


class ConfigurationError(DevotionalError):
    """Required configuration (e.g. the OpenAI API key) is missing."""
    pass


class InvalidRequest(DevotionalError):
    """Client input is missing or malformed."""
    pass


class TopicRejected(DevotionalError):
    """The topic cannot be addressed from a biblical perspective."""

    def __init__(self, reason: str):
        super().__init__(f"topic rejected: {reason}")
        self.reason = reason


class UpstreamError(DevotionalError):
    """The LLM API answered with a non-success status.

    Raised immediately for non-retryable statuses and after retries are
    exhausted for HTTP 429.
    """

    def __init__(self, status: int, detail: str = ""):
        super().__init__(f"upstream request failed with HTTP status {status}")
        self.status = status
        self.detail = detail


class UpstreamResponseError(DevotionalError):
    """The LLM API answered 2xx but the payload could not be used."""
    pass
