"""Scripture verse and topic evaluation models."""

from pydantic import BaseModel, ConfigDict, Field


class Verse(BaseModel):
    """A scripture citation passed between the client, the LLM, and jobs."""

    model_config = ConfigDict(frozen=True)

    reference: str = Field(min_length=1)
    text: str = Field(min_length=1)

    def to_dict(self) -> dict[str, str]:
        return {"reference": self.reference, "text": self.text}

    def format_line(self) -> str:
        """Render as a single prompt line, e.g. ``John 3:16: For God so loved...``."""
        return f"{self.reference}: {self.text}"


class TopicEvaluation(BaseModel):
    """Whether a topic can be addressed from a biblical perspective."""

    can_be_addressed: bool
    reason: str = ""
