"""Configuration loading from YAML + environment overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


class AppSettings(BaseSettings):
    """App-level settings with env override."""

    model_config = SettingsConfigDict(
        env_prefix="VISAFLOW_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    config_path: str = Field(default="config/default.yaml", alias="VISAFLOW_CONFIG_PATH")
    log_level: str = Field(default="INFO", alias="VISAFLOW_LOG_LEVEL")
    database_url: str | None = Field(default=None, alias="VISAFLOW_DATABASE_URL")
    api_host: str = Field(default="0.0.0.0", alias="VISAFLOW_API_HOST")
    api_port: int = Field(default=8000, alias="VISAFLOW_API_PORT")


def validate_workflow(config: dict[str, Any]) -> None:
    """Raise ValueError if workflow.transitions is not a mapping of code -> list of codes."""
    workflow = config.get("workflow") or {}
    transitions = workflow.get("transitions")
    if transitions is None:
        return
    if not isinstance(transitions, dict):
        raise ValueError("workflow.transitions must be a mapping of status code to a list of codes")
    for code, targets in transitions.items():
        if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
            raise ValueError(
                f"workflow.transitions.{code} must be a list of status codes, got {targets!r}"
            )
    default_code = workflow.get("default_status_code")
    if default_code is not None and not isinstance(default_code, str):
        raise ValueError("workflow.default_status_code must be a string")


def get_config(config_path: str | None = None) -> dict[str, Any]:
    """Load merged config from YAML and apply env overrides via AppSettings."""
    settings = AppSettings()
    path = config_path or settings.config_path
    base = _default_config()
    if Path(path).exists():
        base = _deep_merge(base, _load_yaml(path))
        config_dir = Path(path).parent
        if "default" in Path(path).name:
            dev_path = config_dir / "dev.yaml"
            if dev_path.exists() and os.environ.get("VISAFLOW_ENV") == "dev":
                base = _deep_merge(base, _load_yaml(str(dev_path)))
        local_path = config_dir / "local.yaml"
        if local_path.exists():
            base = _deep_merge(base, _load_yaml(str(local_path)))
    # Env overrides (DATABASE_URL standard for Docker/Postgres; VISAFLOW_DATABASE_URL for app)
    db_url = os.environ.get("DATABASE_URL") or settings.database_url
    if db_url:
        base.setdefault("database", {})["url"] = db_url
    if "VISAFLOW_LOG_LEVEL" in os.environ:
        base.setdefault("app", {})["log_level"] = settings.log_level
    validate_workflow(base)
    return base


def _default_config() -> dict[str, Any]:
    return {
        "app": {"name": "visaflow", "env": "default", "log_level": "INFO"},
        "database": {"url": "sqlite:///./data/visaflow.db", "echo": False},
        "workflow": {"default_status_code": "em_preparacao", "transitions": {}},
        "api": {"host": "0.0.0.0", "port": 8000},
    }


def get_transition_overrides(config: dict[str, Any]) -> dict[str, list[str]]:
    return dict((config.get("workflow") or {}).get("transitions") or {})


def get_default_status_code(config: dict[str, Any]) -> str:
    return (config.get("workflow") or {}).get("default_status_code") or "em_preparacao"
