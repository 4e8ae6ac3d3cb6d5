"""
Runtime configuration for the loadscope console.
"""

import logging
import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

log = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-KEY"

ENV_BASE_URL = "LOADSCOPE_BASE_URL"
ENV_API_KEY = "LOADSCOPE_API_KEY"
ENV_CONNECT_TIMEOUT = "LOADSCOPE_CONNECT_TIMEOUT"


class LoadscopeConfig(BaseModel):
    """Configuration model for the console, resolved once at startup."""

    base_url: str = Field(
        default="http://localhost:8090",
        description="Base URL of the backend serving both feeds.",
    )
    api_key: str = Field(
        default="Some-random_key",
        description="Static key sent as the X-API-KEY header on the stress-test feed.",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds allowed to establish a feed connection. Reads never time out.",
    )
    metrics_path: str = Field(default="/api/metrics/stream")
    stress_test_path: str = Field(default="/api/stress-test/stream")

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return value

    @property
    def metrics_url(self) -> str:
        return f"{self.base_url}{self.metrics_path}"

    @property
    def stress_test_url(self) -> str:
        return f"{self.base_url}{self.stress_test_path}"

    def auth_headers(self) -> dict[str, str]:
        """Headers required by the authenticated stress-test feed."""
        return {API_KEY_HEADER: self.api_key}

    @classmethod
    def from_env(cls, load_env_file: bool = True, **overrides) -> "LoadscopeConfig":
        """
        Build the configuration from the environment.

        A ``.env`` file found from the working directory is loaded first
        (without overriding variables already set). Keyword overrides whose
        value is not None take precedence over the environment.

        Raises:
            ConfigurationError: If a value is invalid.
        """
        if load_env_file:
            env_path = find_dotenv(usecwd=True)
            if env_path:
                log.debug(f"Loading environment from {env_path}")
                load_dotenv(dotenv_path=env_path, override=False)

        values = {}
        env_mappings = {
            ENV_BASE_URL: "base_url",
            ENV_API_KEY: "api_key",
            ENV_CONNECT_TIMEOUT: "connect_timeout",
        }
        for env_var, attr in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                values[attr] = value

        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(_format_validation_error(e)) from e


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "config"
        problems.append(f"{location}: {item.get('msg')}")
    return "Invalid configuration: " + "; ".join(problems)


def resolve_config(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    connect_timeout: Optional[float] = None,
) -> LoadscopeConfig:
    """Resolve the configuration for a CLI invocation."""
    return LoadscopeConfig.from_env(
        base_url=base_url,
        api_key=api_key,
        connect_timeout=connect_timeout,
    )
