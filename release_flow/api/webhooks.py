"""
Webhook endpoints for Cloud Build notifications delivered by Pub/Sub push.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from release_flow.config import Settings, get_settings
from release_flow.models.api_response import WebhookResponse
from release_flow.models.build_event import BuildEvent, PubSubPushEnvelope
from release_flow.services.flow import (
    ApplicationNotFoundError,
    Flow,
    UnsupportedBuildError,
    VersionNotFoundError,
    get_flow,
)
from release_flow.services.slack_client import SlackError
from release_flow.utils.resilience import TransientError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_webhook_token(token: Optional[str], expected: Optional[str]) -> bool:
    """
    Verify the shared token carried on the push endpoint URL.

    Args:
        token: Token from the request's query string
        expected: Configured token (None disables verification)

    Returns:
        True if the token is valid or verification is disabled
    """
    if not expected:
        return True
    if not token:
        return False
    return hmac.compare_digest(token, expected)


def decode_event(envelope: PubSubPushEnvelope, token: Optional[str], settings: Settings) -> BuildEvent:
    """
    Authenticate a push request and decode its build event.

    Raises:
        HTTPException: 401 on token mismatch, 400 on undecodable data
    """
    if not verify_webhook_token(token, settings.webhook_token):
        logger.warning("Invalid webhook token received")
        raise HTTPException(status_code=401, detail="Invalid webhook token")

    try:
        return envelope.to_build_event()
    except (ValueError, ValidationError) as e:
        logger.error(f"Invalid build event payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid build event payload")


@router.post("/cloudbuild", response_model=WebhookResponse)
def handle_build_webhook(
    envelope: PubSubPushEnvelope,
    token: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    flow: Flow = Depends(get_flow),
) -> WebhookResponse:
    """
    Receive a Cloud Build notification and open release PRs.

    This endpoint:
    1. Verifies the shared webhook token (when configured)
    2. Decodes the Pub/Sub message into a build event
    3. Runs the release flow synchronously
    4. Maps flow errors to HTTP status codes so Pub/Sub can redeliver

    Raises:
        HTTPException: On authentication, payload or processing failures
    """
    event = decode_event(envelope, token, settings)

    try:
        prs = flow.process_build_event(event)
    except (UnsupportedBuildError, ApplicationNotFoundError, VersionNotFoundError) as e:
        logger.warning(f"Build {event.build_id} not released: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except (SlackError, TransientError) as e:
        logger.error(f"Notification for build {event.build_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Notification failed: {e}")
    except Exception as e:
        logger.error(f"Error processing build {event.build_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error processing build event")

    if prs is None:
        return WebhookResponse(
            status="ignored",
            message=f"Build {event.build_id} has not finished ({event.status.value})"
        )

    return WebhookResponse(
        status="processed",
        message=f"Build {event.build_id} processed with {len(prs)} release PR outcome(s)",
        pull_requests=[pr.render() for pr in prs],
    )


@router.post("/cloudbuild/deploy", response_model=WebhookResponse)
def handle_deploy_webhook(
    envelope: PubSubPushEnvelope,
    token: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    flow: Flow = Depends(get_flow),
) -> WebhookResponse:
    """
    Receive a Cloud Build notification and announce the deployment.

    Raises:
        HTTPException: On authentication, payload or processing failures
    """
    event = decode_event(envelope, token, settings)

    if not event.is_finished:
        return WebhookResponse(
            status="ignored",
            message=f"Build {event.build_id} has not finished ({event.status.value})"
        )

    try:
        flow.process_deploy_event(event)
    except (UnsupportedBuildError, ApplicationNotFoundError) as e:
        logger.warning(f"Build {event.build_id} not announced: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except (SlackError, TransientError) as e:
        logger.error(f"Notification for build {event.build_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Notification failed: {e}")
    except Exception as e:
        logger.error(f"Error processing build {event.build_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error processing build event")

    return WebhookResponse(
        status="processed",
        message=f"Deployment of build {event.build_id} announced"
    )
