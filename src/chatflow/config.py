"""Client settings."""

import os

from pydantic import BaseModel, field_validator

DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_AGENT_ID = "build"


def normalize_api_url(url: str) -> str:
    """Strip whitespace and a trailing slash."""
    return url.strip().rstrip("/")


class Settings(BaseModel):
    """Where the agent server lives and how to talk to it."""

    api_url: str = DEFAULT_API_URL
    timeout: float = 30.0
    agent_id: str = DEFAULT_AGENT_ID
    provider: str | None = None

    @field_validator("api_url")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_api_url(value) or DEFAULT_API_URL

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from CHATFLOW_* environment variables.

        Explicit keyword overrides win over the environment; None values are ignored.
        """
        values: dict = {}
        if api_url := os.environ.get("CHATFLOW_API_URL"):
            values["api_url"] = api_url
        if timeout := os.environ.get("CHATFLOW_TIMEOUT"):
            values["timeout"] = float(timeout)
        if agent_id := os.environ.get("CHATFLOW_AGENT_ID"):
            values["agent_id"] = agent_id
        if provider := os.environ.get("CHATFLOW_PROVIDER"):
            values["provider"] = provider
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
