"""Configuration helpers for the LLM profile vault.

Updates: v0.1.0 - 2025-12-14 - Expose settings loader and configuration error types.
"""

from .settings import (
    DEFAULT_AZURE_API_VERSION,
    DEFAULT_DIAGNOSTICS_PATH,
    DEFAULT_TEST_PROMPT_TIMEOUT_MS,
    DEFAULT_VAULT_PATH,
    LLMVaultSettings,
    SettingsError,
    load_settings,
)

__all__ = [
    "DEFAULT_AZURE_API_VERSION",
    "DEFAULT_DIAGNOSTICS_PATH",
    "DEFAULT_TEST_PROMPT_TIMEOUT_MS",
    "DEFAULT_VAULT_PATH",
    "LLMVaultSettings",
    "SettingsError",
    "load_settings",
]
