"""Data models for the release flow service."""

from .application import Application, FlowConfig, Filters, GitAuthor, Manifest
from .api_response import WebhookResponse
from .build_event import BuildEvent, BuildStatus, PubSubMessage, PubSubPushEnvelope
from .message import MessageDetail, NotificationKind
from .release import FileEdit, PullRequest, Release

__all__ = [
    # Configuration models
    "Application",
    "FlowConfig",
    "Filters",
    "GitAuthor",
    "Manifest",
    # Build event models
    "BuildEvent",
    "BuildStatus",
    "PubSubMessage",
    "PubSubPushEnvelope",
    # Release models
    "FileEdit",
    "PullRequest",
    "Release",
    # Notification models
    "MessageDetail",
    "NotificationKind",
    # API response models
    "WebhookResponse",
]
