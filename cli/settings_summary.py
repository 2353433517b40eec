"""Printable summaries for vault configuration.

Updates:
  v0.1.0 - 2025-12-15 - Extract CLI settings summary rendering.
"""

from __future__ import annotations

from config import LLMVaultSettings

from .utils import describe_path, mask_secret


def print_settings_summary(settings: LLMVaultSettings) -> None:
    """Emit a readable summary of resolved configuration."""
    encryption_state = mask_secret(settings.encryption_key)
    if not settings.encryption_key:
        encryption_state += " (API keys will be stored in plaintext)"
    lines = [
        "LLM profile vault settings",
        f"  Vault file:           {describe_path(settings.vault_path, expect_directory=False)}",
        f"  Encryption key:       {encryption_state}",
        f"  Test prompt timeout:  {settings.test_prompt_timeout_ms} ms",
        f"  Azure API version:    {settings.azure_api_version}",
        f"  Diagnostics:          {'enabled' if settings.diagnostics_enabled else 'disabled'}",
    ]
    if settings.diagnostics_enabled:
        lines.append(
            "  Diagnostics log:      "
            f"{describe_path(settings.diagnostics_path, expect_directory=False)}"
        )
    if settings.platform:
        lines.append(f"  Platform override:    {settings.platform}")
    print("\n".join(lines))


__all__ = ["print_settings_summary"]
