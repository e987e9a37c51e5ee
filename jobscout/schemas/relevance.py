"""Relevance classifier response schema."""
from pydantic import BaseModel, ConfigDict, Field


class RelevanceVerdict(BaseModel):
    """Whether a job title matches the stored preference profile.

    The model replies with ``{"isRelevant": ..., "reasoning": ...}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    is_relevant: bool = Field(alias="isRelevant")
    reasoning: str
