"""Reflection job model for background reflection generation."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from devotional.models.verse import Verse


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReflectionJobStatus(str, Enum):
    """States for reflection jobs."""

    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not ReflectionJobStatus.PENDING


class ReflectionJob(BaseModel):
    """Background reflection job record.

    Records are immutable. Every state change builds a new record that the
    store swaps in whole, so a concurrent reader sees either the old record
    or the new one.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    topic: str = ""
    verses: tuple[Verse, ...] = ()

    status: ReflectionJobStatus = ReflectionJobStatus.PENDING

    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    result: str | None = None
    error: str | None = None

    # Informational only: set while the worker waits out an upstream 429
    retry_count: int = Field(default=0, ge=0)
    retry_after: datetime | None = None

    @model_validator(mode="after")
    def _check_terminal_fields(self) -> "ReflectionJob":
        if self.status is ReflectionJobStatus.PENDING:
            if self.result is not None or self.error is not None:
                raise ValueError("pending job cannot carry a result or error")
        elif self.status is ReflectionJobStatus.COMPLETED:
            if self.result is None or self.error is not None:
                raise ValueError("completed job must carry a result and no error")
        elif self.error is None or self.result is not None:
            raise ValueError("failed job must carry an error and no result")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _replace(self, **changes: Any) -> "ReflectionJob":
        # model_copy skips validation, so rebuild through the constructor
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self)(**data)

    def complete(self, result: str, completed_at: datetime | None = None) -> "ReflectionJob":
        return self._replace(
            status=ReflectionJobStatus.COMPLETED,
            completed_at=completed_at or utcnow(),
            result=result,
            error=None,
            retry_after=None,
        )

    def fail(self, error: str, completed_at: datetime | None = None) -> "ReflectionJob":
        return self._replace(
            status=ReflectionJobStatus.ERROR,
            completed_at=completed_at or utcnow(),
            result=None,
            error=error,
            retry_after=None,
        )

    def with_retry(self, retry_count: int, retry_after: datetime) -> "ReflectionJob":
        return self._replace(retry_count=retry_count, retry_after=retry_after)

    def public_view(self) -> dict[str, Any]:
        """Client-facing status: no timestamps, retry counters or inputs."""
        return {
            "status": self.status.value,
            "result": self.result if self.status is ReflectionJobStatus.COMPLETED else None,
            "error": self.error if self.status is ReflectionJobStatus.ERROR else None,
        }

    def to_dict(self) -> dict[str, Any]:
        """Full record for server-side logs and debugging."""
        return {
            "id": self.id,
            "topic": self.topic,
            "verse_count": len(self.verses),
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result,
            "error": self.error,
            "retry_count": self.retry_count,
            "retry_after": self.retry_after.isoformat() if self.retry_after else None,
        }
