"""Application and manifest configuration models."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Filters(BaseModel):
    """Version prefix filters deciding whether a manifest gets a release PR."""

    model_config = ConfigDict(frozen=True)

    include_prefixes: List[str] = Field(default_factory=list)
    exclude_prefixes: List[str] = Field(default_factory=list)


class Manifest(BaseModel):
    """One deployment target of an application."""

    model_config = ConfigDict(frozen=True)

    env: str
    base_branch: Optional[str] = None  # overrides Application.manifest_base_branch
    files: List[str] = Field(default_factory=list)
    pr_body: Optional[str] = None
    filters: Filters = Field(default_factory=Filters)


class Application(BaseModel):
    """A deployable unit built by one build trigger."""

    model_config = ConfigDict(frozen=True)

    name: str
    source_owner: str
    source_name: str
    manifest_owner: str
    manifest_name: str
    manifest_base_branch: str = "main"
    trigger_id: str
    image_name: str
    manifests: List[Manifest] = Field(default_factory=list)


class GitAuthor(BaseModel):
    """Commit author used for release commits."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str


class FlowConfig(BaseModel):
    """Static configuration of the relay, loaded once at startup."""

    model_config = ConfigDict(frozen=True)

    slack_notify_channel: str
    git_author: GitAuthor
    applications: List[Application] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_trigger_ids(self) -> "FlowConfig":
        seen = set()
        for app in self.applications:
            if app.trigger_id in seen:
                raise ValueError(f"duplicate trigger_id {app.trigger_id!r} (application {app.name!r})")
            seen.add(app.trigger_id)
        return self
