"""Rate limit counter model."""

from enum import Enum

from pydantic import BaseModel, Field


class RequestClass(str, Enum):
    """Cost tiers that are rate limited independently."""

    SEARCH = "search"
    CREATE = "create"
    STATUS = "status"


class RateLimitWindow(BaseModel):
    """Request count for one (client, request class) pair in a fixed window."""

    count: int = Field(default=0, ge=0)
    window_start: float

    def is_expired(self, now: float, window_seconds: float) -> bool:
        return now - self.window_start > window_seconds

    def seconds_remaining(self, now: float, window_seconds: float) -> float:
        return max(0.0, self.window_start + window_seconds - now)
