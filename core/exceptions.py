"""Common exception classes for the core package.

All exceptions inherit from :class:`LLMVaultError` and expose a stable ``code``
attribute so outer layers (CLI, routes) can map failures without string
matching.

Updates:
  v0.3.0 - 2025-12-17 - Add test prompt timeout and missing active profile errors.
  v0.2.0 - 2025-12-16 - Add profile service validation and alternate lookup errors.
  v0.1.0 - 2025-12-14 - Created module with vault read/write errors.
"""

from __future__ import annotations

from typing import ClassVar


class LLMVaultError(Exception):
    """Base exception for profile vault and test prompt failures."""

    code: ClassVar[str] = "LLM_VAULT_ERROR"


# ---------------------------------------------------------------------------
# Vault persistence errors
# ---------------------------------------------------------------------------


class ProfileVaultReadError(LLMVaultError):
    """Raised when a stored vault cannot be repaired into a valid shape."""

    code = "VAULT_READ_ERROR"


class ProfileVaultWriteError(LLMVaultError):
    """Raised when a vault mutation would violate the vault schema."""

    code = "VAULT_WRITE_ERROR"


class ProfileNotFoundError(LLMVaultError):
    """Raised when a profile id does not exist in the vault."""

    code = "PROFILE_NOT_FOUND"

    def __init__(self, profile_id: str) -> None:
        super().__init__(f"Profile with id {profile_id} not found")
        self.profile_id = profile_id


# ---------------------------------------------------------------------------
# Profile service errors
# ---------------------------------------------------------------------------


class ProfileValidationError(LLMVaultError):
    """Raised when a payload or candidate profile fails schema validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = list(details or [])


class AlternateProfileNotFoundError(LLMVaultError):
    """Raised when the successor named during delete is missing."""

    code = "ALTERNATE_NOT_FOUND"

    def __init__(self, alternate_id: str) -> None:
        super().__init__(f"Alternate profile with id {alternate_id} not found")
        self.alternate_id = alternate_id


# ---------------------------------------------------------------------------
# Test prompt errors
# ---------------------------------------------------------------------------


class NoActiveProfileError(LLMVaultError):
    """Raised when a test prompt has no explicit or active profile to target."""

    code = "NO_ACTIVE_PROFILE"

    def __init__(self) -> None:
        super().__init__("No active LLM profile is available")


class TestPromptTimeoutError(LLMVaultError):
    """Raised when the client-side timer expires before the provider responds."""

    __test__ = False
    code = "TIMEOUT"

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Test prompt request timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


__all__ = [
    "AlternateProfileNotFoundError",
    "LLMVaultError",
    "NoActiveProfileError",
    "ProfileNotFoundError",
    "ProfileValidationError",
    "ProfileVaultReadError",
    "ProfileVaultWriteError",
    "TestPromptTimeoutError",
]
