"""Cloud Build event data models."""

import base64
import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BuildStatus(str, Enum):
    """Cloud Build status values."""

    STATUS_UNKNOWN = "STATUS_UNKNOWN"
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    WORKING = "WORKING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


FINISHED_STATUSES = frozenset({
    BuildStatus.SUCCESS,
    BuildStatus.FAILURE,
    BuildStatus.INTERNAL_ERROR,
    BuildStatus.TIMEOUT,
    BuildStatus.CANCELLED,
    BuildStatus.EXPIRED,
})


class BuildEvent(BaseModel):
    """Build status notification from Cloud Build."""

    build_id: str = ""
    status: BuildStatus = BuildStatus.STATUS_UNKNOWN
    trigger_id: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    log_url: str = ""
    tag_name: str = ""
    branch_name: str = ""
    repo_name: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def is_success(self) -> bool:
        return self.status == BuildStatus.SUCCESS

    @classmethod
    def from_build(cls, build: Dict[str, Any]) -> "BuildEvent":
        """
        Build an event from a Cloud Build ``Build`` resource.

        Args:
            build: Decoded build resource as published on the cloud-builds topic

        Returns:
            BuildEvent
        """
        substitutions = build.get("substitutions") or {}
        repo_source = (build.get("source") or {}).get("repoSource") or {}
        status = build.get("status") or BuildStatus.STATUS_UNKNOWN.value
        if status not in BuildStatus.__members__:
            status = BuildStatus.STATUS_UNKNOWN.value

        return cls(
            build_id=build.get("id", ""),
            status=BuildStatus(status),
            trigger_id=build.get("buildTriggerId") or None,
            images=build.get("images") or [],
            log_url=build.get("logUrl", ""),
            tag_name=substitutions.get("TAG_NAME", ""),
            branch_name=substitutions.get("BRANCH_NAME", ""),
            repo_name=substitutions.get("REPO_NAME") or repo_source.get("repoName"),
        )


class PubSubMessage(BaseModel):
    """Message part of a Pub/Sub push request."""

    data: str = ""
    attributes: Dict[str, str] = Field(default_factory=dict)
    message_id: Optional[str] = Field(default=None, alias="messageId")


class PubSubPushEnvelope(BaseModel):
    """Body of a Pub/Sub push subscription request."""

    message: PubSubMessage
    subscription: Optional[str] = None

    def to_build_event(self) -> BuildEvent:
        """
        Decode the base64 message data into a BuildEvent.

        Raises:
            ValueError: If the data is not base64 encoded JSON
        """
        try:
            raw = base64.b64decode(self.message.data, validate=True)
            build = json.loads(raw)
        except (ValueError, TypeError) as e:
            raise ValueError(f"message data is not a base64 encoded build: {e}") from e

        if not isinstance(build, dict):
            raise ValueError("message data is not a build object")

        return BuildEvent.from_build(build)
