"""
Service configuration management.

Secrets and endpoints come from the environment; the application list,
chat channel and commit author come from a YAML file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from release_flow.models.application import FlowConfig


class ConfigurationError(Exception):
    """Raised when the flow configuration file cannot be loaded."""
    pass


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Credentials
    github_token: str
    slack_bot_token: str

    # Flow configuration
    flow_config_path: str = "flow.yaml"
    source_repo_prefix: str = "github"

    # Webhook
    webhook_token: Optional[str] = None  # verification skipped when unset

    # External services
    github_api_url: str = "https://api.github.com"
    github_web_url: str = "https://github.com"
    slack_api_url: str = "https://slack.com/api"
    http_timeout_seconds: float = 30.0

    # Service
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()


def load_flow_config(path: Union[str, Path]) -> FlowConfig:
    """
    Load the flow configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated, immutable FlowConfig

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Flow configuration not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Flow configuration {path} must be a mapping")

    try:
        return FlowConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid flow configuration in {path}: {e}") from e
