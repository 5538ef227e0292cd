"""Chat notification data models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    """Kind of notification posted to chat."""

    RELEASE_PR = "release_pr"
    DEPLOY = "deploy"
    FAILURE = "failure"


class MessageDetail(BaseModel):
    """Everything a chat notification renders."""

    kind: NotificationKind
    is_success: bool
    log_url: str = ""
    app_name: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    tag_name: str = ""
    branch_name: str = ""
    pr_summary: Optional[str] = None  # release_pr only
    error_message: Optional[str] = None  # failure only
