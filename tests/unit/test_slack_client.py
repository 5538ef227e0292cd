"""Unit tests for the Slack client and message rendering."""

import json
from unittest.mock import patch

import httpx
import pytest

from release_flow.models.message import MessageDetail, NotificationKind
from release_flow.services.slack_client import SlackClient, SlackError, build_payload
from release_flow.utils.resilience import TransientError


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("release_flow.utils.resilience.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def release_detail():
    return MessageDetail(
        kind=NotificationKind.RELEASE_PR,
        is_success=True,
        log_url="https://console.cloud.google.com/cloud-build/builds/b-1",
        app_name="api",
        images=["gcr.io/acme/api:v1.2.0"],
        tag_name="v1.2.0",
        pr_summary="production: https://github.com/acme/k8s-manifests/pull/42",
    )


def fields_by_title(payload):
    return {f["title"]: f["value"] for f in payload["attachments"][0]["fields"]}


class TestBuildPayload:
    """Test notification rendering."""

    def test_release_pr_summary(self, release_detail):
        payload = build_payload("#release", release_detail)

        attachment = payload["attachments"][0]
        assert payload["channel"] == "#release"
        assert attachment["color"] == "good"
        assert attachment["title"] == "Release PRs for api"
        assert attachment["title_link"] == release_detail.log_url
        fields = fields_by_title(payload)
        assert fields["Pull Requests"] == "production: https://github.com/acme/k8s-manifests/pull/42"
        assert fields["Tag"] == "v1.2.0"
        assert fields["Images"] == "gcr.io/acme/api:v1.2.0"
        assert "Branch" not in fields
        assert "Error" not in fields

    def test_deploy_notification(self):
        detail = MessageDetail(
            kind=NotificationKind.DEPLOY,
            is_success=True,
            app_name="github-acme-api",
            branch_name="main",
        )

        payload = build_payload("#release", detail)

        assert payload["attachments"][0]["title"] == "Deployed github-acme-api"
        assert "Pull Requests" not in fields_by_title(payload)
        assert "title_link" not in payload["attachments"][0]

    def test_failure_without_application(self):
        detail = MessageDetail(
            kind=NotificationKind.FAILURE,
            is_success=False,
            error_message="no images found",
        )

        payload = build_payload("#release", detail)

        attachment = payload["attachments"][0]
        assert attachment["color"] == "danger"
        assert attachment["title"] == "Build failed"
        fields = fields_by_title(payload)
        assert "Application" not in fields
        assert "no images found" in fields["Error"]

    def test_failure_with_application(self):
        detail = MessageDetail(
            kind=NotificationKind.FAILURE,
            is_success=False,
            app_name="api",
            error_message="boom",
        )

        assert build_payload("#release", detail)["text"] == "Build failed for api"


class TestPostMessage:
    """Test posting to chat.postMessage."""

    def test_posts_payload(self, release_detail):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "ts": "1.2"})

        client = SlackClient("xoxb-token", transport=httpx.MockTransport(handler))
        client.post_message("#release", release_detail)

        assert len(requests) == 1
        assert requests[0].url.path == "/api/chat.postMessage"
        assert requests[0].headers["Authorization"] == "Bearer xoxb-token"
        assert json.loads(requests[0].content) == build_payload("#release", release_detail)

    def test_slack_error_is_raised(self, release_detail):
        def handler(request):
            return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})

        client = SlackClient("xoxb-token", transport=httpx.MockTransport(handler))

        with pytest.raises(SlackError) as exc_info:
            client.post_message("#missing", release_detail)

        assert exc_info.value.error_code == "channel_not_found"

    def test_server_error_is_not_retried(self, release_detail, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = SlackClient("xoxb-token", transport=httpx.MockTransport(handler))

        with pytest.raises(SlackError) as exc_info:
            client.post_message("#release", release_detail)

        assert exc_info.value.error_code == "http_503"
        assert len(calls) == 1
        no_sleep.assert_not_called()

    def test_read_timeout_is_not_retried(self, release_detail, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        client = SlackClient("xoxb-token", transport=httpx.MockTransport(handler))

        with pytest.raises(SlackError):
            client.post_message("#release", release_detail)

        assert len(calls) == 1
        no_sleep.assert_not_called()

    def test_rate_limit_waits_for_retry_after(self, release_detail, no_sleep):
        responses = iter([
            httpx.Response(429, headers={"Retry-After": "7"}),
            httpx.Response(200, json={"ok": True}),
        ])

        client = SlackClient("xoxb-token", transport=httpx.MockTransport(lambda request: next(responses)))
        client.post_message("#release", release_detail)

        no_sleep.assert_called_once_with(7.0)

    def test_rate_limit_exhausts_retries(self, release_detail):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        client = SlackClient("xoxb-token", transport=httpx.MockTransport(handler))

        with pytest.raises(TransientError):
            client.post_message("#release", release_detail)

        assert len(calls) == 3

    def test_connect_error_is_retried(self, release_detail, no_sleep):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"ok": True})

        client = SlackClient("xoxb-token", transport=httpx.MockTransport(handler))
        client.post_message("#release", release_detail)

        assert len(attempts) == 2
        assert no_sleep.call_count == 1
