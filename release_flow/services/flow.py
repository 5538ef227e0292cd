"""
Release flow orchestration.

Turns a finished build event into release pull requests against the
application's manifest repository and a chat notification summarizing
the outcome.
"""

import re
from typing import List, Optional, Sequence

from release_flow.models.application import Application, FlowConfig, GitAuthor, Manifest
from release_flow.models.build_event import BuildEvent
from release_flow.models.message import MessageDetail, NotificationKind
from release_flow.models.release import FileEdit, PullRequest, Release
from release_flow.services.git_client import GitHubClient
from release_flow.services.slack_client import SlackClient
from release_flow.utils.logging import (
    get_logger,
    log_build_event,
    log_error_with_context,
    log_release_outcome,
)
from release_flow.utils.metrics import MetricsCollector, emit_metric, track_api_call
from release_flow.utils.resilience import handle_partial_failure

logger = get_logger(__name__)


class FlowError(Exception):
    """Base exception for release flow errors."""
    pass


class UnsupportedBuildError(FlowError):
    """Finished build that cannot be mapped to an application."""
    pass


class ApplicationNotFoundError(FlowError):
    """No configured application matches the build."""
    pass


class VersionNotFoundError(FlowError):
    """The built image carries no usable version tag."""
    pass


def should_create_pr(manifest: Manifest, version: str) -> bool:
    """
    Decide whether a manifest gets a release PR for a version.

    Exclude prefixes are checked first and always win. With no include
    prefixes every remaining version is released, otherwise one of them
    must match.
    """
    for prefix in manifest.filters.exclude_prefixes:
        if version.startswith(prefix):
            return False

    if not manifest.filters.include_prefixes:
        return True

    for prefix in manifest.filters.include_prefixes:
        if version.startswith(prefix):
            return True

    return False


def get_version_from_image(images: Sequence[str]) -> str:
    """
    Extract the version tag from the first built image.

    Only the first image is considered; ``gcr.io/acme/api:v1.2.0`` yields
    ``v1.2.0``.

    Raises:
        VersionNotFoundError: If there is no image or it carries no tag
    """
    if not images:
        raise VersionNotFoundError("no images found")

    parts = images[0].split(":")
    if len(parts) < 2:
        raise VersionNotFoundError(f"image {images[0]} has no tag")
    if not parts[1]:
        raise VersionNotFoundError(f"image {images[0]} has an empty tag")

    return parts[1]


def get_application_by_trigger_id(
    applications: Sequence[Application],
    trigger_id: str
) -> Application:
    for app in applications:
        if app.trigger_id == trigger_id:
            return app
    raise ApplicationNotFoundError(f"No application found for {trigger_id}")


def get_application_by_repo_name(
    applications: Sequence[Application],
    repo_name: str,
    prefix: str = "github"
) -> Application:
    """
    Find the application whose source repository matches a build repo name.

    Build repositories mirrored from GitHub are named
    ``<prefix>-<owner>-<name>``.
    """
    for app in applications:
        if repo_name == f"{prefix}-{app.source_owner}-{app.source_name}":
            return app
    raise ApplicationNotFoundError(f"No application found for {repo_name}")


def build_release(
    version: str,
    app: Application,
    manifest: Manifest,
    author: Optional[GitAuthor] = None,
    web_url: str = "https://github.com"
) -> Release:
    """
    Build the change set for one manifest.

    Every configured file gets a substitution replacing ``<image>:<anything>``
    with ``<image>:<version>``.
    """
    base_branch = manifest.base_branch or app.manifest_base_branch

    body = f"{web_url}/{app.source_owner}/{app.source_name}/releases/tag/{version}"
    if manifest.pr_body:
        body += f"\n\n{manifest.pr_body}"

    edits = [
        FileEdit(
            path=path,
            pattern=f"{re.escape(app.image_name)}:.*",
            replacement=f"{app.image_name}:{version}",
        )
        for path in manifest.files
    ]

    return Release(
        owner=app.manifest_owner,
        repo=app.manifest_name,
        base_branch=base_branch,
        app_name=app.name,
        env=manifest.env,
        version=version,
        body=body,
        edits=edits,
        author=author,
    )


def render_pull_requests(prs: Sequence[PullRequest]) -> str:
    """Render outcomes as one ``env: url`` or ``env: error`` line each."""
    return "\n".join(pr.render() for pr in prs)


class Flow:
    """Processes build events into release PRs and chat notifications."""

    def __init__(
        self,
        config: FlowConfig,
        git_client: GitHubClient,
        slack_client: SlackClient,
        source_repo_prefix: str = "github",
        github_web_url: str = "https://github.com"
    ):
        """
        Initialize the flow.

        Args:
            config: Immutable application list, channel and commit author
            git_client: Client opening release pull requests
            slack_client: Client posting notifications
            source_repo_prefix: Provider prefix of build repository names
            github_web_url: Base URL used for release tag links
        """
        self.config = config
        self.git_client = git_client
        self.slack_client = slack_client
        self.source_repo_prefix = source_repo_prefix
        self.github_web_url = github_web_url.rstrip("/")

    def process_build_event(self, event: BuildEvent) -> Optional[List[PullRequest]]:
        """
        Process a build event from a build trigger.

        Args:
            event: Build event

        Returns:
            None if the build is still running, otherwise the per-manifest
            outcomes in configuration order (empty for a failed build)

        Raises:
            UnsupportedBuildError: Finished build without a trigger ID
            ApplicationNotFoundError: No application for the trigger ID
            VersionNotFoundError: After the failure notification was posted
            SlackError: If the notification cannot be delivered
        """
        log_build_event(logger, event.build_id, event.trigger_id, event.status.value)

        if not event.is_finished:
            logger.info(f"Build {event.build_id} hasn't finished", extra={"build_id": event.build_id})
            return None

        if event.trigger_id is None:
            raise UnsupportedBuildError("unsupported build: untriggered")

        try:
            app = get_application_by_trigger_id(self.config.applications, event.trigger_id)
        except ApplicationNotFoundError as e:
            raise ApplicationNotFoundError(
                f"No application configured for trigger {event.trigger_id}"
            ) from e

        metrics = MetricsCollector(event.build_id, event.trigger_id)
        metrics.start()

        try:
            prs = self._release(event, app, metrics)
        except Exception as e:
            metrics.complete(status="failed", error_message=str(e))
            raise

        metrics.complete(status="completed" if event.is_success else "build_failed")
        if event.is_success:
            emit_metric("release_prs_created", metrics.prs_created, app_name=app.name)
        return prs

    def _release(
        self,
        event: BuildEvent,
        app: Application,
        metrics: MetricsCollector
    ) -> List[PullRequest]:
        if not event.is_success:
            self._notify(self.failure_message(
                event, f"Build {event.build_id} finished with status {event.status.value}", app
            ), metrics)
            return []

        try:
            version = get_version_from_image(event.images)
        except VersionNotFoundError as e:
            log = logger.with_context(build_id=event.build_id, trigger_id=event.trigger_id, app_name=app.name)
            log_error_with_context(log, "Could not determine version", e)
            self._notify(self.failure_message(
                event, f"Could not determine version from image: {e}", app
            ), metrics)
            raise

        prs = self.create_release_prs(version, app, metrics)

        handle_partial_failure(
            "release_prs",
            total_items=len(prs),
            successful_items=sum(1 for pr in prs if pr.succeeded),
            errors=[pr.render() for pr in prs if not pr.succeeded],
            context={"app_name": app.name, "version": version},
        )

        self._notify(self.release_pr_message(event, prs, app), metrics)
        return prs

    def process_deploy_event(self, event: BuildEvent) -> None:
        """
        Process a build event that only announces a deployment.

        Applications are matched by the build's repository name instead of
        its trigger ID and no pull requests are created.

        Raises:
            UnsupportedBuildError: Finished build without a repository name
            ApplicationNotFoundError: No application for the repository
            SlackError: If the notification cannot be delivered
        """
        log_build_event(logger, event.build_id, event.trigger_id, event.status.value)

        if not event.is_finished:
            logger.info(f"Build {event.build_id} hasn't finished", extra={"build_id": event.build_id})
            return

        if not event.repo_name:
            raise UnsupportedBuildError("unsupported build: no repository")

        app = get_application_by_repo_name(
            self.config.applications, event.repo_name, self.source_repo_prefix
        )

        if not event.is_success:
            self._notify(self.failure_message(
                event, f"Build {event.build_id} finished with status {event.status.value}", app
            ))
            return

        self._notify(self.deploy_message(event))

    def create_release_prs(
        self,
        version: str,
        app: Application,
        metrics: Optional[MetricsCollector] = None
    ) -> List[PullRequest]:
        """
        Open release PRs for every eligible manifest of an application.

        A failing manifest is recorded as an error outcome and does not
        stop the remaining manifests.
        """
        prs: List[PullRequest] = []

        for manifest in app.manifests:
            if not should_create_pr(manifest, version):
                logger.info(
                    f"Skipping {manifest.env}: {version} filtered out",
                    extra={"app_name": app.name, "env": manifest.env}
                )
                continue

            release = build_release(
                version, app, manifest, self.config.git_author, self.github_web_url
            )

            try:
                with track_api_call(metrics, "github"):
                    url = self.git_client.create_release_pr(release)
            except Exception as e:
                log_release_outcome(logger, app.name, manifest.env, version, error=str(e))
                prs.append(PullRequest(env=manifest.env, error=str(e)))
                if metrics:
                    metrics.record_pull_request(success=False)
                continue

            log_release_outcome(logger, app.name, manifest.env, version, url=url)
            prs.append(PullRequest(env=manifest.env, url=url))
            if metrics:
                metrics.record_pull_request(success=True)

        return prs

    def release_pr_message(
        self,
        event: BuildEvent,
        prs: Sequence[PullRequest],
        app: Application
    ) -> MessageDetail:
        return MessageDetail(
            kind=NotificationKind.RELEASE_PR,
            is_success=True,
            log_url=event.log_url,
            app_name=app.name,
            images=list(event.images),
            tag_name=event.tag_name,
            branch_name=event.branch_name,
            pr_summary=render_pull_requests(prs),
        )

    def deploy_message(self, event: BuildEvent) -> MessageDetail:
        return MessageDetail(
            kind=NotificationKind.DEPLOY,
            is_success=True,
            log_url=event.log_url,
            app_name=event.repo_name,
            tag_name=event.tag_name,
            branch_name=event.branch_name,
        )

    def failure_message(
        self,
        event: BuildEvent,
        error_message: str,
        app: Optional[Application] = None
    ) -> MessageDetail:
        return MessageDetail(
            kind=NotificationKind.FAILURE,
            is_success=False,
            log_url=event.log_url,
            app_name=app.name if app else None,
            images=list(event.images),
            tag_name=event.tag_name,
            branch_name=event.branch_name,
            error_message=error_message,
        )

    def _notify(self, detail: MessageDetail, metrics: Optional[MetricsCollector] = None) -> None:
        with track_api_call(metrics, "slack"):
            self.slack_client.post_message(self.config.slack_notify_channel, detail)

    def close(self) -> None:
        """Close the HTTP clients."""
        self.git_client.close()
        self.slack_client.close()


_flow: Optional[Flow] = None


def get_flow() -> Flow:
    """
    Get or create the global flow instance.

    Settings and the YAML configuration are read on first use and never
    reloaded.

    Returns:
        Flow instance
    """
    global _flow
    if _flow is None:
        from release_flow.config import get_settings, load_flow_config

        settings = get_settings()
        _flow = Flow(
            config=load_flow_config(settings.flow_config_path),
            git_client=GitHubClient(
                settings.github_token,
                api_url=settings.github_api_url,
                timeout=settings.http_timeout_seconds,
            ),
            slack_client=SlackClient(
                settings.slack_bot_token,
                api_url=settings.slack_api_url,
                timeout=settings.http_timeout_seconds,
            ),
            source_repo_prefix=settings.source_repo_prefix,
            github_web_url=settings.github_web_url,
        )
    return _flow


def close_flow() -> None:
    """Close the global flow instance, if one was created."""
    global _flow
    if _flow is not None:
        _flow.close()
        _flow = None
