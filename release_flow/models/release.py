"""Release pull request data models."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from release_flow.models.application import GitAuthor


class FileEdit(BaseModel):
    """Regex substitution applied to one file of the manifest repository."""

    model_config = ConfigDict(frozen=True)

    path: str
    pattern: str
    replacement: str


class Release(BaseModel):
    """Change set submitted as a single release pull request."""

    owner: str
    repo: str
    base_branch: str
    app_name: str
    env: str
    version: str
    body: str
    edits: List[FileEdit] = Field(default_factory=list)
    author: Optional[GitAuthor] = None

    @property
    def branch_name(self) -> str:
        return f"release/{self.app_name}-{self.env}-{self.version}"

    @property
    def title(self) -> str:
        return f"Release {self.app_name} {self.version} to {self.env}"


class PullRequest(BaseModel):
    """Outcome of one manifest's release: either a URL or an error."""

    env: str
    url: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _url_or_error(self) -> "PullRequest":
        if (self.url is None) == (self.error is None):
            raise ValueError("exactly one of url or error must be set")
        return self

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def render(self) -> str:
        return f"{self.env}: {self.url if self.succeeded else self.error}"
