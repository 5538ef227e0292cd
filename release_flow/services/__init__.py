"""Business logic services package."""

from release_flow.services.flow import (
    Flow,
    FlowError,
    UnsupportedBuildError,
    ApplicationNotFoundError,
    VersionNotFoundError,
    should_create_pr,
    get_version_from_image,
    get_application_by_trigger_id,
    get_application_by_repo_name,
    get_flow,
)
from release_flow.services.git_client import (
    GitHubClient,
    GitHubError,
    NothingToReleaseError,
)
from release_flow.services.slack_client import (
    SlackClient,
    SlackError,
)

__all__ = [
    'Flow',
    'FlowError',
    'UnsupportedBuildError',
    'ApplicationNotFoundError',
    'VersionNotFoundError',
    'should_create_pr',
    'get_version_from_image',
    'get_application_by_trigger_id',
    'get_application_by_repo_name',
    'get_flow',
    'GitHubClient',
    'GitHubError',
    'NothingToReleaseError',
    'SlackClient',
    'SlackError',
]
