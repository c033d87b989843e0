"""Data models for the devotional server."""

from devotional.models.rate_limit import RateLimitWindow, RequestClass
from devotional.models.reflection_job import ReflectionJob, ReflectionJobStatus
from devotional.models.verse import TopicEvaluation, Verse

__all__ = [
    "RateLimitWindow",
    "RequestClass",
    "ReflectionJob",
    "ReflectionJobStatus",
    "TopicEvaluation",
    "Verse",
]
