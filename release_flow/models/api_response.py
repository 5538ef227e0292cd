"""API response data models."""

from typing import List

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    """Response from webhook handler."""

    status: str
    message: str
    pull_requests: List[str] = Field(default_factory=list)
