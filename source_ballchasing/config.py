"""Endpoint/resource configuration and runtime settings.

Endpoint and resource configuration arrive from the capture host as JSON.
Runtime knobs (API root, request pacing, logging) come from ``BALLCHASING_*``
environment variables through Pydantic Settings.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .lib import json

DEFAULT_API_ROOT = "https://ballchasing.com/api"
DEFAULT_REQUEST_INTERVAL = 0.5
DEFAULT_PAGE_SIZE = 200


class EndpointConfig(BaseModel):
    """Connection settings for the ballchasing API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    auth_token: str = Field(
        min_length=1,
        title="Auth Token",
        description=(
            "Authentication token for the ballchasing api. "
            "If you don't have one, get one by visiting: https://ballchasing.com/login"
        ),
        json_schema_extra={"secret": True},
    )

    @field_validator("auth_token")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("auth token must not be blank")
        return v


class ResourceConfig(BaseModel):
    """Per-binding settings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    creator_id: str = Field(
        min_length=1,
        title="Creator ID",
        description=(
            "The creator id to filter replays in ballchasing. "
            "Only replays in groups for this creator will be ingested."
        ),
    )

    @field_validator("creator_id")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("creator id must not be blank")
        return v


def _coerce_raw(raw: str | bytes | dict[str, Any], what: str) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{what} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{what} must be a JSON object, got {type(data).__name__}")
    return data


def parse_endpoint_config(raw: str | bytes | dict[str, Any]) -> EndpointConfig:
    data = _coerce_raw(raw, "endpoint config")
    try:
        return EndpointConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid endpoint config: {exc}") from exc


def parse_resource_config(raw: str | bytes | dict[str, Any]) -> ResourceConfig:
    data = _coerce_raw(raw, "resource config")
    try:
        return ResourceConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid resource config: {exc}") from exc


def config_schema() -> dict[str, Any]:
    return EndpointConfig.model_json_schema(by_alias=True)


def resource_config_schema() -> dict[str, Any]:
    return ResourceConfig.model_json_schema(by_alias=True)


class SourceSettings(BaseSettings):
    """Runtime settings with automatic ``BALLCHASING_*`` env var support."""

    api_root: str = Field(default=DEFAULT_API_ROOT)
    request_interval: float = Field(default=DEFAULT_REQUEST_INTERVAL, gt=0)
    request_timeout: Optional[float] = Field(default=None, gt=0)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=200)
    json_logs: Optional[bool] = Field(default=None)
    verbose: bool = Field(default=False)

    model_config = SettingsConfigDict(env_prefix="BALLCHASING_")

    @field_validator("api_root")
    @classmethod
    def _trim_root(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_root must be an http(s) URL, got {v!r}")
        return v

    @classmethod
    def load(cls, **overrides: Any) -> "SourceSettings":
        """Load settings from the environment, raising ConfigError on bad values."""
        try:
            return cls(**{k: v for k, v in overrides.items() if v is not None})
        except ValidationError as exc:
            raise ConfigError(f"invalid settings: {exc}") from exc


__all__ = [
    "EndpointConfig",
    "ResourceConfig",
    "SourceSettings",
    "parse_endpoint_config",
    "parse_resource_config",
    "config_schema",
    "resource_config_schema",
]
