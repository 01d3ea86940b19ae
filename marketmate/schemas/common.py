from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx raised as a domain error."""

    code: str = Field(description="machine code, e.g. invalid_state or quota_exceeded")
    message: str
    details: list[dict[str, Any]] = Field(default_factory=list)
