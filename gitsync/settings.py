"""Configuration resolution: event payload, config file and environment merged into one SyncConfig."""

import json
import logging
from collections.abc import Mapping
from functools import cached_property
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from tomlkit.exceptions import TOMLKitError

from gitsync.errors import ConfigError, UnknownStateError
from gitsync.models import Comment, GitHubUser, Issue, Label, Repository

logger = logging.getLogger(__name__)

ADO_HOST = "https://dev.azure.com"

# loglevel names accepted in config, mapped onto stdlib levels. None disables output.
LOG_LEVELS: dict[str, int | None] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "silent": None,
}
DEFAULT_LOG_LEVEL = "debug"

DEFAULT_STATES = {
    "new": "New",
    "active": "Active",
    "closed": "Closed",
    "reopened": "New",
    "deleted": "Removed",
}


class StateMap:
    """Two-way lookup between canonical state keys and Azure DevOps state names.

    Several keys may share one ADO state (``new`` and ``reopened`` both map to
    ``New`` by default); the reverse lookup returns the first configured key.
    """

    _CLOSED_KEYS = frozenset({"closed", "deleted"})

    def __init__(self, states: Mapping[str, str]) -> None:
        self._to_ado = dict(states)
        self._to_key: dict[str, str] = {}
        for key, ado_state in states.items():
            self._to_key.setdefault(ado_state, key)

    def ado_state(self, key: str) -> str:
        try:
            return self._to_ado[key]
        except KeyError:
            raise ConfigError(f"No Azure DevOps state configured for '{key}'. Set ado.states.{key}.") from None

    def canonical_key(self, ado_state: str) -> str:
        try:
            return self._to_key[ado_state]
        except KeyError:
            raise UnknownStateError(
                f"Azure DevOps state '{ado_state}' matches no key in ado.states {sorted(self._to_ado)}"
            ) from None

    def github_state(self, key: str) -> str:
        """Project canonical state `key` onto GitHub's open/closed vocabulary."""
        return "closed" if key in self._CLOSED_KEYS else "open"


class AdoMappings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    handles: dict[str, str] | None = None  # GitHub login -> ADO identity


class AdoSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    organization: str | None = None
    project: str | None = None
    wit: str = "Bug"
    states: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_STATES))
    area_path: str | None = Field(None, alias="areaPath")
    iteration_path: str | None = Field(None, alias="iterationPath")
    bypass_rules: bool = Field(False, alias="bypassRules")
    auto_create: bool = Field(True, alias="autoCreate")
    validate_only: bool = Field(False, alias="validateOnly")
    assigned_to: str | None = Field(None, alias="assignedTo")  # default assignee
    mappings: AdoMappings | None = None
    token: SecretStr | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def org_url(self) -> str:
        return f"{ADO_HOST}/{self.organization}"

    @cached_property
    def state_map(self) -> StateMap:
        return StateMap(self.states)


class GitHubSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: SecretStr | None = None


class SyncConfig(BaseModel):
    """Everything one invocation needs: ADO/GitHub settings plus the triggering event."""

    model_config = ConfigDict(extra="ignore")

    ado: AdoSettings = Field(default_factory=AdoSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)

    # Copied from the webhook payload
    action: str | None = None
    issue: Issue | None = None
    comment: Comment | None = None
    label: Label | None = None
    assignee: GitHubUser | None = None
    repository: Repository | None = None
    closed_at: str | None = None
    schedule: str | bool | None = None

    log_level: str = DEFAULT_LOG_LEVEL
    github_repository: str | None = None  # owner/repo of the workflow run
    github_repository_owner: str | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        if value is None:
            return DEFAULT_LOG_LEVEL
        level = str(value).strip().lower()
        if level == "warning":
            level = "warn"
        if level not in LOG_LEVELS:
            logger.info("Unknown log level '%s', using %s", value, DEFAULT_LOG_LEVEL)
            return DEFAULT_LOG_LEVEL
        return level

    @property
    def is_scheduled(self) -> bool:
        return bool(self.schedule)

    @property
    def repo_full_name(self) -> str | None:
        if self.github_repository:
            return self.github_repository
        return self.repository.full_name if self.repository else None

    def require_ado(self) -> None:
        """Raise ConfigError unless the ADO target is fully specified."""
        missing = [name for name in ("organization", "project") if not getattr(self.ado, name)]
        if missing:
            raise ConfigError(f"Missing Azure DevOps configuration: {', '.join('ado.' + m for m in missing)}")


class EnvOverrides(BaseSettings):
    """Process environment overrides; highest precedence in the merge."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ado_token: SecretStr | None = None
    github_token: SecretStr | None = None
    config_file: str | None = None
    log_level: str | None = None
    github_repository: str | None = None
    github_repository_owner: str | None = None
    github_event_path: str | None = None

    def as_config(self) -> dict[str, Any]:
        """Set values only, secrets unwrapped, ready to merge."""
        values: dict[str, Any] = {}
        for name, value in self:
            if value is None:
                continue
            values[name] = value.get_secret_value() if isinstance(value, SecretStr) else value
        return values


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load a JSON (or .toml) config file, returning {} when missing or invalid."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
        data = tomlkit.parse(text).unwrap() if path.suffix == ".toml" else json.loads(text)
    except (OSError, ValueError, TOMLKitError):
        logger.info("Configuration file %s not found or invalid.", path)
        return {}
    if not isinstance(data, Mapping):
        logger.info("Configuration file %s is not an object, ignoring it.", path)
        return {}
    logger.info("Configuration file %s loaded.", path)
    return dict(data)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_config(
    payload: Mapping[str, Any] | None,
    file_config: Mapping[str, Any] | None,
    overrides: Mapping[str, Any] | None,
) -> SyncConfig:
    """Merge the three sources into a SyncConfig.

    Precedence (highest to lowest):
    1. overrides (process environment)
    2. file_config (JSON/TOML config file)
    3. payload (webhook event)
    """
    merged: dict[str, Any] = {"ado": {}, "github": {}}
    for source in (payload, file_config, overrides):
        merged = _deep_merge(merged, source or {})

    if merged.get("ado_token") and isinstance(merged.get("ado"), Mapping):
        merged["ado"] = {**merged["ado"], "token": merged["ado_token"]}
    if merged.get("github_token") and isinstance(merged.get("github"), Mapping):
        merged["github"] = {**merged["github"], "token": merged["github_token"]}

    try:
        return SyncConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def resolve_config(payload: Mapping[str, Any] | None, overrides: EnvOverrides | None = None) -> SyncConfig:
    overrides = overrides if overrides is not None else EnvOverrides()
    file_config = load_config_file(overrides.config_file) if overrides.config_file else {}
    return merge_config(payload, file_config, overrides.as_config())
