"""Settings management for the LLM profile vault.

Updates:
  v0.2.0 - 2025-12-18 - Load ``.env`` values through python-dotenv without mutating os.environ.
  v0.1.1 - 2025-12-16 - Ignore secrets found in JSON configuration files.
  v0.1.0 - 2025-12-14 - Introduce LLMVaultSettings with env, dotenv, and JSON sources.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger("llm_vault.settings")

ENV_PREFIX = "LLM_VAULT_"
DEFAULT_CONFIG_PATH = Path("config") / "config.json"
DEFAULT_VAULT_PATH = Path("data") / "llm_profiles.json"
DEFAULT_DIAGNOSTICS_PATH = Path("data") / "logs" / "llm_diagnostics.jsonl"
DEFAULT_AZURE_API_VERSION = "2024-02-15-preview"
DEFAULT_TEST_PROMPT_TIMEOUT_MS = 10_000
_DOTENV_FALLBACK_PATH = ".env"

# Field name -> accepted environment keys (without the prefix).
_ENV_KEYS: dict[str, tuple[str, ...]] = {
    "vault_path": ("VAULT_PATH", "vault_path"),
    "encryption_key": ("ENCRYPTION_KEY", "encryption_key"),
    "test_prompt_timeout_ms": ("TEST_PROMPT_TIMEOUT_MS", "test_prompt_timeout_ms"),
    "azure_api_version": ("AZURE_API_VERSION", "azure_api_version"),
    "diagnostics_enabled": ("DIAGNOSTICS_ENABLED", "diagnostics_enabled"),
    "diagnostics_path": ("DIAGNOSTICS_PATH", "diagnostics_path"),
    "platform": ("PLATFORM", "platform"),
}
_JSON_KEYS = (
    "vault_path",
    "test_prompt_timeout_ms",
    "azure_api_version",
    "diagnostics_enabled",
    "diagnostics_path",
    "platform",
)
_SECRET_JSON_KEYS = frozenset({"encryption_key", "LLM_VAULT_ENCRYPTION_KEY"})


class SettingsError(Exception):
    """Raised when vault configuration cannot be loaded or validated."""


def _read_dotenv_values() -> dict[str, str]:
    """Load ``.env`` entries into a mapping without mutating ``os.environ``."""
    env_file_override = os.getenv(f"{ENV_PREFIX}ENV_FILE")
    if env_file_override is not None:
        candidate = env_file_override.strip()
        if not candidate:
            return {}
        path = Path(candidate).expanduser()
    else:
        path = Path(_DOTENV_FALLBACK_PATH).expanduser()
    if not path.is_file():
        return {}
    raw_values = dotenv_values(str(path))
    return {str(key): str(value) for key, value in raw_values.items() if value is not None}


class LLMVaultSettings(BaseSettings):
    """Runtime configuration sourced from keyword overrides, JSON, and the environment."""

    vault_path: Path = Field(default=DEFAULT_VAULT_PATH)
    encryption_key: str | None = Field(
        default=None,
        description="Fernet key used to seal stored API keys.",
        repr=False,
    )
    test_prompt_timeout_ms: int = Field(default=DEFAULT_TEST_PROMPT_TIMEOUT_MS)
    azure_api_version: str = Field(default=DEFAULT_AZURE_API_VERSION)
    diagnostics_enabled: bool = Field(default=True)
    diagnostics_path: Path = Field(default=DEFAULT_DIAGNOSTICS_PATH)
    platform: str | None = Field(
        default=None,
        description="Platform label recorded on encryption fallback events.",
    )

    model_config = cast(
        "SettingsConfigDict",
        {
            "env_prefix": ENV_PREFIX,
            "case_sensitive": False,
            "populate_by_name": True,
        },
    )

    @field_validator("vault_path", "diagnostics_path", mode="before")
    def _normalise_path(cls, value: Any) -> Path:
        """Expand user-relative paths and coerce values to Path instances."""
        if value is None or not str(value).strip():
            raise ValueError("a filesystem path is required")
        return Path(str(value).strip()).expanduser()

    @field_validator("test_prompt_timeout_ms")
    def _validate_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("test_prompt_timeout_ms must be greater than zero")
        return value

    @field_validator("encryption_key", "platform", mode="before")
    def _strip_optional(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None

    @field_validator("azure_api_version", mode="before")
    def _strip_api_version(cls, value: Any) -> str:
        stripped = str(value or "").strip()
        if not stripped:
            raise ValueError("azure_api_version cannot be empty")
        return stripped

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        """Define configuration source precedence.

        Order (highest → lowest):
            1. Explicit keyword arguments (e.g. load_settings(vault_path="...")).
            2. JSON configuration file.
            3. Environment variables, then ``.env`` entries.
            4. File secrets.
        """

        def env_with_dotenv(_: BaseSettings | None = None) -> dict[str, Any]:
            data: dict[str, Any] = {}
            dotenv_data = _read_dotenv_values()

            def _lookup(candidate: str) -> str | None:
                value = os.getenv(candidate)
                if value is None:
                    value = dotenv_data.get(candidate)
                if value is None:
                    return None
                stripped_value = str(value).strip()
                return stripped_value or None

            for field, keys in _ENV_KEYS.items():
                for key in keys:
                    value = _lookup(f"{ENV_PREFIX}{key}") or _lookup(f"{ENV_PREFIX}{key.upper()}")
                    if value is not None:
                        data[field] = value
                        break
            return data

        return (
            init_settings,
            cls._json_config_settings_source(settings_cls),
            cast("PydanticBaseSettingsSource", env_with_dotenv),
            file_secret_settings,
        )

    @classmethod
    def _json_config_settings_source(
        cls,
        _: type[BaseSettings],
    ) -> PydanticBaseSettingsSource:
        """Return settings extracted from an optional JSON config file."""

        def _loader(_: BaseSettings | None = None) -> dict[str, Any]:
            explicit_path = os.getenv(f"{ENV_PREFIX}CONFIG_JSON")
            candidates: list[Path] = []
            if explicit_path:
                candidates.append(Path(explicit_path).expanduser())
            candidates.append(DEFAULT_CONFIG_PATH)

            for index, path in enumerate(candidates):
                if not path.exists():
                    if explicit_path and index == 0:
                        raise SettingsError(f"Configuration file not found: {path}")
                    continue
                try:
                    raw_contents = path.read_text(encoding="utf-8")
                except OSError as exc:  # pragma: no cover - filesystem failure is env-specific
                    raise SettingsError(f"Unable to read configuration file: {path}") from exc
                try:
                    data = json.loads(raw_contents)
                except json.JSONDecodeError as exc:
                    raise SettingsError(f"Invalid JSON in configuration file: {path}") from exc
                if not isinstance(data, dict):
                    raise SettingsError(f"Configuration file {path} must contain a JSON object")
                mapping_data = cast("Mapping[object, Any]", data)
                data_dict = {str(key): value for key, value in mapping_data.items()}
                removed_secrets = sorted(key for key in _SECRET_JSON_KEYS if key in data_dict)
                if removed_secrets:
                    logger.warning(
                        "Ignoring secret key(s) %s in configuration file %s; "
                        "set credentials via environment variables instead.",
                        ", ".join(removed_secrets),
                        path,
                    )
                return {key: data_dict[key] for key in _JSON_KEYS if key in data_dict}
            return {}

        return cast("PydanticBaseSettingsSource", _loader)


def load_settings(**overrides: Any) -> LLMVaultSettings:
    """Return validated settings, raising SettingsError on failure."""
    try:
        return LLMVaultSettings(**overrides)
    except SettingsError:
        raise
    except ValidationError as exc:
        raise SettingsError("Invalid LLM vault configuration") from exc


__all__ = [
    "DEFAULT_AZURE_API_VERSION",
    "DEFAULT_DIAGNOSTICS_PATH",
    "DEFAULT_TEST_PROMPT_TIMEOUT_MS",
    "DEFAULT_VAULT_PATH",
    "LLMVaultSettings",
    "SettingsError",
    "load_settings",
]
