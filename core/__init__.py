"""Core service layer for the LLM profile vault.

Updates:
  v0.2.0 - 2025-12-18 - Export the test prompt service and provider strategy table.
  v0.1.0 - 2025-12-15 - Surface vault, encryption, and profile services.
"""

from .diagnostics import (
    DiagnosticsEventRecorder,
    JsonlDiagnosticsRecorder,
    ProfileDiagnosticsEvent,
    TestPromptDiagnosticsEvent,
    dispatch_diagnostics_event,
    record_diagnostics_event,
)
from .encryption import (
    DecryptionResult,
    EncryptionFallbackEvent,
    EncryptionResult,
    EncryptionService,
    EncryptionStatus,
    FernetSafeStorage,
    SafeStorageAdapter,
)
from .exceptions import (
    AlternateProfileNotFoundError,
    LLMVaultError,
    NoActiveProfileError,
    ProfileNotFoundError,
    ProfileValidationError,
    ProfileVaultReadError,
    ProfileVaultWriteError,
    TestPromptTimeoutError,
)
from .factory import ProfileServices, build_profile_services
from .profile_service import (
    ActivateProfileResult,
    CreateProfileResult,
    DeleteProfileResult,
    ListProfilesResult,
    ProfileService,
    UpdateProfileResult,
)
from .profile_vault import (
    InMemoryProfileVaultStore,
    JsonFileProfileVaultStore,
    ProfileVaultService,
    ProfileVaultStore,
    normalize_vault,
)
from .providers import PROVIDER_STRATEGIES, ProviderOptions, ProviderStrategy
from .test_prompt import TestPromptService
from .transcript_store import TestTranscriptStore

__all__ = [
    "ActivateProfileResult",
    "AlternateProfileNotFoundError",
    "CreateProfileResult",
    "DecryptionResult",
    "DeleteProfileResult",
    "DiagnosticsEventRecorder",
    "EncryptionFallbackEvent",
    "EncryptionResult",
    "EncryptionService",
    "EncryptionStatus",
    "FernetSafeStorage",
    "InMemoryProfileVaultStore",
    "JsonFileProfileVaultStore",
    "JsonlDiagnosticsRecorder",
    "LLMVaultError",
    "ListProfilesResult",
    "NoActiveProfileError",
    "PROVIDER_STRATEGIES",
    "ProfileDiagnosticsEvent",
    "ProfileNotFoundError",
    "ProfileService",
    "ProfileServices",
    "ProfileValidationError",
    "ProfileVaultReadError",
    "ProfileVaultService",
    "ProfileVaultStore",
    "ProfileVaultWriteError",
    "ProviderOptions",
    "ProviderStrategy",
    "SafeStorageAdapter",
    "TestPromptDiagnosticsEvent",
    "TestPromptService",
    "TestPromptTimeoutError",
    "TestTranscriptStore",
    "UpdateProfileResult",
    "build_profile_services",
    "dispatch_diagnostics_event",
    "normalize_vault",
    "record_diagnostics_event",
]
