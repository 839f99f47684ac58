"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

from star_cache.core.errors import InvalidInputError

ENV_PREFIX = "STC_"
TOKEN_FALLBACK_ENV = "GITHUB_TOKEN"
DEFAULT_CONFIG_PATH = Path("~/.config/star-cache/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("github", "token"): "github_token",
    ("github", "api_url"): "api_url",
    ("storage", "db_path"): "db_path",
    ("storage", "lock_timeout"): "store_lock_timeout",
    ("fetch", "parallelism"): "parallelism",
    ("fetch", "per_page"): "per_page",
    ("fetch", "request_timeout"): "request_timeout",
    ("fetch", "user_timeout"): "user_timeout",
    ("search", "min_score"): "min_score",
    ("search", "max_hits"): "max_hits",
    ("session", "freshness_window"): "freshness_window",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    github_token: str | None = None
    api_url: str = "https://api.github.com"
    db_path: Path = Field(default=Path.home() / ".star-cache" / "cache.db")
    store_lock_timeout: float = Field(default=2.0, ge=0)
    parallelism: int = Field(default=20, gt=0)
    per_page: int = Field(default=100, gt=0, le=100)
    request_timeout: float = Field(default=10.0, gt=0)
    user_timeout: float = Field(default=5.0, gt=0)
    min_score: float = Field(default=0.5, ge=0)
    max_hits: int = Field(default=100, gt=0)
    freshness_window: float = Field(default=3600.0, gt=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator("api_url")
    @classmethod
    def _strip_api_url(cls, value: str) -> str:
        return value.rstrip("/")

    def require_token(self) -> str:
        """Return the GitHub token or fail when none is configured."""
        token = (self.github_token or "").strip()
        if not token:
            raise InvalidInputError(
                f'GitHub token not found; pass it with --token or the "{TOKEN_FALLBACK_ENV}" environment variable'
            )
        return token

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with STC_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    fallback_token = os.environ.get(TOKEN_FALLBACK_ENV)
    if fallback_token:
        overrides["github_token"] = fallback_token
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for the CLI and app factory."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
