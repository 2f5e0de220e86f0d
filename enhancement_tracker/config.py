"""Pydantic-based configuration helpers for the Enhancement Tracker."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

ENV_FILES = ("env.local", ".env")


class AppSettings(BaseModel):
    """Settings required to reach the store, the identity provider and Slack."""

    database_url: str = Field(..., alias="DATABASE_URL")
    supabase_url: str = Field(..., alias="SUPABASE_URL")
    supabase_service_role_key: str = Field(..., alias="SUPABASE_SERVICE_ROLE_KEY")
    allowed_origins: List[str] = Field(default_factory=list, alias="ALLOWED_ORIGINS")
    slack_signing_secret: str | None = Field(None, alias="SLACK_SIGNING_SECRET")
    request_id_prefix: str = Field("REQ", alias="REQUEST_ID_PREFIX")
    api_rate_limit: int = Field(100, alias="API_RATE_LIMIT")
    api_rate_window_seconds: int = Field(15 * 60, alias="API_RATE_WINDOW_SECONDS")
    auth_rate_limit: int = Field(20, alias="AUTH_RATE_LIMIT")
    auth_rate_window_seconds: int = Field(15 * 60, alias="AUTH_RATE_WINDOW_SECONDS")
    slack_rate_limit: int = Field(60, alias="SLACK_RATE_LIMIT")
    slack_rate_window_seconds: int = Field(60, alias="SLACK_RATE_WINDOW_SECONDS")
    trusted_proxy_hops: int = Field(0, alias="TRUSTED_PROXY_HOPS")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | list[str] | None) -> list[str]:
        if value is None:
            return []
        if isinstance(value, list):
            return [item.strip() for item in value if item.strip()]
        return [item.strip() for item in value.split(",") if item.strip()]

    @field_validator("slack_signing_secret", mode="before")
    @classmethod
    def _blank_secret_is_unset(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None

    @field_validator("request_id_prefix")
    @classmethod
    def _validate_prefix(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Request id prefix must not be empty")
        return trimmed

    @field_validator(
        "api_rate_limit",
        "api_rate_window_seconds",
        "auth_rate_limit",
        "auth_rate_window_seconds",
        "slack_rate_limit",
        "slack_rate_window_seconds",
    )
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Rate limits and windows must be greater than zero")
        return value

    @field_validator("trusted_proxy_hops")
    @classmethod
    def _ensure_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Trusted proxy hops must not be negative")
        return value


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


def load_local_env(base_dir: Path | None = None) -> None:
    """Load development env files unless running in production."""

    if os.environ.get("APP_ENV", "").strip().lower() == "production":
        return
    root = base_dir or Path.cwd()
    for name in ENV_FILES:
        candidate = root / name
        if candidate.exists():
            load_dotenv(candidate, override=False)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors()]
        message = (
            "Missing required environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc
