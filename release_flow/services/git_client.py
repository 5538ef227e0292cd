"""
GitHub client component.

Opens release pull requests against a manifest repository through the
GitHub REST API: branches off the base branch, rewrites image tags in the
configured files and opens the pull request.
"""

import base64
import re
import time
from typing import Any, Dict, Optional, Tuple

import httpx

from release_flow.models.release import FileEdit, Release
from release_flow.utils.logging import get_logger, log_api_call
from release_flow.utils.resilience import TransientError, retry_with_backoff

logger = get_logger(__name__)


class GitHubError(Exception):
    """Raised when a GitHub API call fails permanently."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NothingToReleaseError(GitHubError):
    """Raised when no configured file references the image."""
    pass


class GitHubClient:
    """Creates release pull requests in GitHub repositories."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the GitHub client.

        Args:
            token: Access token with contents and pull request write scope
            api_url: GitHub REST API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._client = httpx.Client(
            base_url=api_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    def close(self) -> None:
        self._client.close()

    def create_release_pr(self, release: Release) -> str:
        """
        Submit a release as a single pull request.

        Args:
            release: Change set to submit

        Returns:
            HTML URL of the created pull request, or of the open pull
            request already submitted for the same release branch

        Raises:
            NothingToReleaseError: If none of the files changed on a new branch
            GitHubError: If any API call fails
        """
        owner, repo = release.owner, release.repo
        logger.info(
            f"Creating release PR {release.branch_name} in {owner}/{repo}",
            extra={"app_name": release.app_name, "env": release.env}
        )

        base_sha = self.get_branch_sha(owner, repo, release.base_branch)
        created = self.create_branch(owner, repo, release.branch_name, base_sha)

        changed = 0
        for edit in release.edits:
            if self._apply_edit(release, edit):
                changed += 1

        if not created:
            existing = self.find_pull_request(owner, repo, release.branch_name)
            if existing:
                logger.info(
                    f"Release PR for {release.branch_name} already open: {existing}",
                    extra={"app_name": release.app_name, "env": release.env}
                )
                return existing

        if changed == 0 and (
            created or self.get_branch_sha(owner, repo, release.branch_name) == base_sha
        ):
            raise NothingToReleaseError(
                f"No changes for {release.version} in {owner}/{repo} "
                f"({', '.join(e.path for e in release.edits) or 'no files'})"
            )

        return self.create_pull_request(
            owner,
            repo,
            title=release.title,
            head=release.branch_name,
            base=release.base_branch,
            body=release.body,
        )

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=10.0)
    def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        data = self._request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        return data["object"]["sha"]

    def create_branch(self, owner: str, repo: str, branch: str, sha: str) -> bool:
        """
        Create a branch at the given commit.

        Returns:
            False if the branch already exists (a redelivered build event)
        """
        try:
            self._request(
                "POST",
                f"/repos/{owner}/{repo}/git/refs",
                json={"ref": f"refs/heads/{branch}", "sha": sha},
            )
        except GitHubError as e:
            if e.status_code == 422 and "already exists" in str(e):
                logger.info(f"Branch {branch} already exists in {owner}/{repo}, reusing it")
                return False
            raise
        return True

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=10.0)
    def find_pull_request(self, owner: str, repo: str, branch: str) -> Optional[str]:
        """Return the HTML URL of the open pull request from a branch, if any."""
        pulls = self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"head": f"{owner}:{branch}", "state": "open"},
        )
        return pulls[0]["html_url"] if pulls else None

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=10.0)
    def get_file(self, owner: str, repo: str, path: str, ref: str) -> Tuple[str, str]:
        """
        Fetch a file's text content.

        Returns:
            Tuple of (content, blob sha)
        """
        data = self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{path}",
            params={"ref": ref},
        )
        content = base64.b64decode(data.get("content", "")).decode("utf-8")
        return content, data["sha"]

    def update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        branch: str,
        content: str,
        sha: str,
        message: str,
        author: Optional[Dict[str, str]] = None,
    ) -> None:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "sha": sha,
            "branch": branch,
        }
        if author:
            body["author"] = author
            body["committer"] = author
        self._request("PUT", f"/repos/{owner}/{repo}/contents/{path}", json=body)

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        head: str,
        base: str,
        body: str,
    ) -> str:
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        )
        return data["html_url"]

    def _apply_edit(self, release: Release, edit: FileEdit) -> bool:
        """Rewrite one file on the release branch. Returns False if unchanged."""
        content, sha = self.get_file(release.owner, release.repo, edit.path, release.branch_name)
        updated = re.sub(edit.pattern, edit.replacement, content)

        if updated == content:
            logger.info(f"No change needed in {edit.path}", extra={"env": release.env})
            return False

        author = None
        if release.author:
            author = {"name": release.author.name, "email": release.author.email}

        self.update_file(
            release.owner,
            release.repo,
            edit.path,
            branch=release.branch_name,
            content=updated,
            sha=sha,
            message=f"Update {edit.path} to {release.version}",
            author=author,
        )
        return True

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """
        Perform one API request and decode the JSON response.

        Raises:
            TransientError: On transport errors and 5xx responses
            GitHubError: On any other non-2xx response
        """
        start_time = time.time()
        try:
            response = self._client.request(method, endpoint, **kwargs)
        except httpx.TransportError as e:
            log_api_call(logger, "github", endpoint, method, error=str(e))
            raise TransientError(f"GitHub {method} {endpoint} failed: {e}") from e

        duration_ms = (time.time() - start_time) * 1000

        if response.is_success:
            log_api_call(logger, "github", endpoint, method, response.status_code, duration_ms)
            return response.json() if response.content else {}

        message = _error_message(response)
        log_api_call(logger, "github", endpoint, method, response.status_code, duration_ms, error=message)

        if response.status_code >= 500:
            raise TransientError(f"GitHub {method} {endpoint} returned {response.status_code}: {message}")
        raise GitHubError(
            f"GitHub {method} {endpoint} returned {response.status_code}: {message}",
            status_code=response.status_code,
        )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and "message" in data:
        return data["message"]
    return response.text
