"""Factories for constructing profile and test prompt services from validated settings.

Updates:
  v0.2.0 - 2025-12-18 - Route encryption fallbacks into the diagnostics recorder.
  v0.1.0 - 2025-12-15 - Introduce build_profile_services bootstrap helper.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .diagnostics import JsonlDiagnosticsRecorder, dispatch_diagnostics_event
from .encryption import EncryptionService, FernetSafeStorage
from .profile_service import ProfileService
from .profile_vault import JsonFileProfileVaultStore, ProfileVaultService, ProfileVaultStore
from .providers import ProviderOptions
from .test_prompt import TestPromptService
from .transcript_store import TestTranscriptStore

if TYPE_CHECKING:  # pragma: no cover - typing only
    import httpx

    from config import LLMVaultSettings

    from .diagnostics import DiagnosticsEventRecorder
    from .encryption import SafeStorageAdapter

factory_logger = logging.getLogger("llm_vault.factory")


@dataclass(frozen=True, slots=True)
class ProfileServices:
    """Bundle of wired services sharing one vault, encryption service, and transcript store."""

    vault_service: ProfileVaultService
    encryption_service: EncryptionService
    profile_service: ProfileService
    test_prompt_service: TestPromptService
    transcript_store: TestTranscriptStore
    diagnostics_recorder: DiagnosticsEventRecorder | None


def build_profile_services(
    settings: LLMVaultSettings,
    *,
    vault_store: ProfileVaultStore | None = None,
    safe_storage: SafeStorageAdapter | None = None,
    diagnostics_recorder: DiagnosticsEventRecorder | None = None,
    transcript_store: TestTranscriptStore | None = None,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> ProfileServices:
    """Return services configured from *settings*, honouring injected collaborators."""
    store = vault_store or JsonFileProfileVaultStore(settings.vault_path)
    recorder = diagnostics_recorder
    if recorder is None and settings.diagnostics_enabled:
        recorder = JsonlDiagnosticsRecorder(settings.diagnostics_path)
    adapter = safe_storage or FernetSafeStorage(settings.encryption_key)
    if not adapter.is_encryption_available():
        factory_logger.info(
            "Credential encryption unavailable; API keys will be stored in plaintext",
            extra={"vault_path": str(settings.vault_path)},
        )

    encryption_service = EncryptionService(
        safe_storage=adapter,
        on_fallback=lambda event: dispatch_diagnostics_event(recorder, event),
        platform=settings.platform or sys.platform,
    )
    vault_service = ProfileVaultService(store)
    transcripts = transcript_store or TestTranscriptStore()
    profile_service = ProfileService(
        vault_service,
        encryption_service,
        diagnostics_recorder=recorder,
    )
    test_prompt_service = TestPromptService(
        vault_service=vault_service,
        encryption_service=encryption_service,
        transcript_store=transcripts,
        diagnostics_recorder=recorder,
        timeout_ms=settings.test_prompt_timeout_ms,
        provider_options=ProviderOptions(azure_api_version=settings.azure_api_version),
        client_factory=client_factory,
    )
    return ProfileServices(
        vault_service=vault_service,
        encryption_service=encryption_service,
        profile_service=profile_service,
        test_prompt_service=test_prompt_service,
        transcript_store=transcripts,
        diagnostics_recorder=recorder,
    )


__all__ = ["ProfileServices", "build_profile_services"]
