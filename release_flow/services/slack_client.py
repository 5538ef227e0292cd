"""
Slack client component.

Renders notifications into Slack attachments and posts them with the
chat.postMessage Web API method.
"""

import time
from typing import Any, Dict, List, Optional

import httpx

from release_flow.models.message import MessageDetail, NotificationKind
from release_flow.utils.logging import get_logger, log_api_call
from release_flow.utils.resilience import TransientError, retry_with_backoff

logger = get_logger(__name__)


class SlackError(Exception):
    """Raised when Slack rejects a message."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


def build_payload(channel: str, detail: MessageDetail) -> Dict[str, Any]:
    """
    Render a notification into a chat.postMessage payload.

    Args:
        channel: Channel ID or name
        detail: Notification to render

    Returns:
        JSON-serializable request body
    """
    app = detail.app_name or "unknown application"

    if detail.kind == NotificationKind.RELEASE_PR:
        title = f"Release PRs for {app}"
    elif detail.kind == NotificationKind.DEPLOY:
        title = f"Deployed {app}"
    else:
        title = f"Build failed for {app}" if detail.app_name else "Build failed"

    fields: List[Dict[str, Any]] = []
    if detail.app_name:
        fields.append({"title": "Application", "value": detail.app_name, "short": True})
    if detail.tag_name:
        fields.append({"title": "Tag", "value": detail.tag_name, "short": True})
    if detail.branch_name:
        fields.append({"title": "Branch", "value": detail.branch_name, "short": True})
    if detail.images:
        fields.append({"title": "Images", "value": "\n".join(detail.images), "short": False})
    if detail.pr_summary:
        fields.append({"title": "Pull Requests", "value": detail.pr_summary, "short": False})
    if detail.error_message:
        fields.append({"title": "Error", "value": f"```{detail.error_message}```", "short": False})

    attachment: Dict[str, Any] = {
        "color": "good" if detail.is_success else "danger",
        "title": title,
        "fallback": title,
        "fields": fields,
    }
    if detail.log_url:
        attachment["title_link"] = detail.log_url

    return {"channel": channel, "text": title, "attachments": [attachment]}


def _retry_after(response: httpx.Response) -> Optional[float]:
    """Read the Retry-After header Slack sends with 429 responses."""
    try:
        return float(response.headers["Retry-After"])
    except (KeyError, ValueError):
        return None


class SlackClient:
    """Posts notifications to a Slack channel."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://slack.com/api",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the Slack client.

        Args:
            token: Bot token with chat:write scope
            api_url: Slack Web API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._client = httpx.Client(
            base_url=api_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {token}"},
        )

    def close(self) -> None:
        self._client.close()

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def post_message(self, channel: str, detail: MessageDetail) -> None:
        """
        Post a notification.

        Args:
            channel: Channel ID or name
            detail: Notification to post

        Raises:
            SlackError: If Slack rejects the message or fails after receiving it
            TransientError: If Slack is unreachable or rate limited after retries
        """
        endpoint = "/chat.postMessage"
        payload = build_payload(channel, detail)

        start_time = time.time()
        try:
            response = self._client.post(endpoint, json=payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            log_api_call(logger, "slack", endpoint, "POST", error=str(e))
            raise TransientError(f"Slack chat.postMessage failed: {e}") from e
        except httpx.TransportError as e:
            # The message may already have been posted
            log_api_call(logger, "slack", endpoint, "POST", error=str(e))
            raise SlackError(f"Slack chat.postMessage failed: {e}", error_code="transport_error") from e

        duration_ms = (time.time() - start_time) * 1000

        if response.status_code == 429:
            log_api_call(logger, "slack", endpoint, "POST", response.status_code, duration_ms,
                         error="rate_limited")
            raise TransientError(
                "Slack chat.postMessage was rate limited",
                retry_after=_retry_after(response),
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success or not data.get("ok"):
            error_code = data.get("error") or f"http_{response.status_code}"
            log_api_call(logger, "slack", endpoint, "POST", response.status_code, duration_ms,
                         error=error_code)
            raise SlackError(f"Slack rejected message to {channel}: {error_code}", error_code=error_code)

        log_api_call(logger, "slack", endpoint, "POST", response.status_code, duration_ms)
        logger.info(f"Posted {detail.kind.value} notification to {channel}")
