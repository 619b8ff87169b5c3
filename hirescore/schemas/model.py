from pydantic import BaseModel, Field


class ModelInfo(BaseModel):
    """A provider model available for scoring."""

    id: str = Field(description="Model identifier sent with each request")
    name: str = Field(description="Human-readable model name")
    owned_by: str | None = Field(default=None, description="Model publisher")
    context_length: int | None = Field(default=None, description="Context window in tokens")
    recommended: bool = Field(default=False, description="Suggested for CV screening")
