"""
Unit tests for webhook endpoints.
"""

import base64
import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from release_flow.api.webhooks import verify_webhook_token
from release_flow.config import Settings, get_settings
from release_flow.main import app
from release_flow.models.build_event import BuildStatus
from release_flow.models.release import PullRequest
from release_flow.services.flow import (
    ApplicationNotFoundError,
    Flow,
    UnsupportedBuildError,
    VersionNotFoundError,
    get_flow,
)
from release_flow.services.slack_client import SlackError


BUILD = {
    "id": "build-1",
    "status": "SUCCESS",
    "buildTriggerId": "trigger-api",
    "images": ["gcr.io/acme/api:v1.2.0"],
    "logUrl": "https://console.cloud.google.com/cloud-build/builds/build-1",
    "substitutions": {"TAG_NAME": "v1.2.0", "REPO_NAME": "github-acme-api"},
}


def push_body(build):
    """Wrap a build resource in a Pub/Sub push envelope."""
    return {
        "message": {
            "data": base64.b64encode(json.dumps(build).encode()).decode(),
            "attributes": {"buildId": build.get("id", ""), "status": build.get("status", "")},
            "messageId": "123",
        },
        "subscription": "projects/acme/subscriptions/cloud-builds",
    }


@pytest.fixture
def mock_flow():
    """Mock release flow."""
    return MagicMock(spec=Flow)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        github_token="gh-token",
        slack_bot_token="xoxb-token",
        webhook_token="push-secret",
    )


@pytest.fixture
def client(mock_flow, settings):
    """Create test client with the flow and settings overridden."""
    app.dependency_overrides[get_flow] = lambda: mock_flow
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def post_build(client, build, token="push-secret", path="/webhooks/cloudbuild"):
    return client.post(path, params={"token": token}, json=push_body(build))


def test_verify_webhook_token():
    """Test shared token verification."""
    assert verify_webhook_token("secret", "secret") is True
    assert verify_webhook_token("wrong", "secret") is False
    assert verify_webhook_token(None, "secret") is False
    assert verify_webhook_token(None, None) is True


def test_webhook_invalid_token(client, mock_flow):
    """Test webhook with invalid token."""
    response = post_build(client, BUILD, token="invalid")

    assert response.status_code == 401
    assert "Invalid webhook token" in response.json()["detail"]
    mock_flow.process_build_event.assert_not_called()


def test_webhook_missing_message(client):
    """Test webhook without a Pub/Sub message."""
    response = client.post("/webhooks/cloudbuild", params={"token": "push-secret"}, json={})

    assert response.status_code == 422


def test_webhook_undecodable_data(client, mock_flow):
    """Test webhook with data that is not base64 JSON."""
    response = client.post(
        "/webhooks/cloudbuild",
        params={"token": "push-secret"},
        json={"message": {"data": "not-base64!!"}},
    )

    assert response.status_code == 400
    assert "Invalid build event payload" in response.json()["detail"]
    mock_flow.process_build_event.assert_not_called()


def test_webhook_decodes_build_event(client, mock_flow):
    """Test that the build resource is decoded into a BuildEvent."""
    mock_flow.process_build_event.return_value = []

    post_build(client, BUILD)

    event = mock_flow.process_build_event.call_args.args[0]
    assert event.build_id == "build-1"
    assert event.status == BuildStatus.SUCCESS
    assert event.trigger_id == "trigger-api"
    assert event.images == ["gcr.io/acme/api:v1.2.0"]
    assert event.tag_name == "v1.2.0"
    assert event.repo_name == "github-acme-api"


def test_webhook_processed(client, mock_flow):
    """Test webhook with a released build."""
    mock_flow.process_build_event.return_value = [
        PullRequest(env="production", url="https://github.com/acme/k8s-manifests/pull/42")
    ]

    response = post_build(client, BUILD)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "processed"
    assert data["pull_requests"] == ["production: https://github.com/acme/k8s-manifests/pull/42"]


def test_webhook_ignores_unfinished_build(client, mock_flow):
    """Test webhook ignores builds that are still running."""
    mock_flow.process_build_event.return_value = None

    response = post_build(client, {**BUILD, "status": "WORKING"})

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


@pytest.mark.parametrize("error", [
    UnsupportedBuildError("unsupported build: untriggered"),
    ApplicationNotFoundError("No application configured for trigger trigger-api"),
    VersionNotFoundError("no images found"),
])
def test_webhook_unprocessable_build(client, mock_flow, error):
    """Test that flow errors about the build map to 422."""
    mock_flow.process_build_event.side_effect = error

    response = post_build(client, BUILD)

    assert response.status_code == 422
    assert response.json()["detail"] == str(error)


def test_webhook_notification_failure(client, mock_flow):
    """Test that a failed notification maps to 502."""
    mock_flow.process_build_event.side_effect = SlackError("not_authed", "not_authed")

    response = post_build(client, BUILD)

    assert response.status_code == 502


def test_webhook_unexpected_error(client, mock_flow):
    """Test that unexpected errors map to 500."""
    mock_flow.process_build_event.side_effect = RuntimeError("boom")

    response = post_build(client, BUILD)

    assert response.status_code == 500
    assert "Internal server error" in response.json()["detail"]


def test_webhook_without_token_configured(mock_flow):
    """Test that verification is skipped when no token is configured."""
    mock_flow.process_build_event.return_value = []
    app.dependency_overrides[get_flow] = lambda: mock_flow
    app.dependency_overrides[get_settings] = lambda: Settings(
        _env_file=None, github_token="gh-token", slack_bot_token="xoxb-token", webhook_token=None
    )
    try:
        response = TestClient(app).post("/webhooks/cloudbuild", json=push_body(BUILD))
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200


def test_deploy_webhook_processed(client, mock_flow):
    """Test the deploy notification endpoint."""
    response = post_build(client, BUILD, path="/webhooks/cloudbuild/deploy")

    assert response.status_code == 200
    assert response.json()["status"] == "processed"
    event = mock_flow.process_deploy_event.call_args.args[0]
    assert event.repo_name == "github-acme-api"


def test_deploy_webhook_ignores_unfinished_build(client, mock_flow):
    """Test the deploy endpoint ignores running builds."""
    response = post_build(client, {**BUILD, "status": "QUEUED"}, path="/webhooks/cloudbuild/deploy")

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    mock_flow.process_deploy_event.assert_not_called()


def test_deploy_webhook_unknown_repository(client, mock_flow):
    """Test the deploy endpoint with an unconfigured repository."""
    mock_flow.process_deploy_event.side_effect = ApplicationNotFoundError(
        "No application found for github-acme-api"
    )

    response = post_build(client, BUILD, path="/webhooks/cloudbuild/deploy")

    assert response.status_code == 422
