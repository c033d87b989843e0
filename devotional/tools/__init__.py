"""Tool implementations shared by the MCP tools and the HTTP routes."""

from devotional.tools.reflect import reflection_start
from devotional.tools.reflect_status import reflection_status, reflection_wait
from devotional.tools.search import scripture_search

__all__ = [
    "reflection_start",
    "reflection_status",
    "reflection_wait",
    "scripture_search",
]
