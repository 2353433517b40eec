"""Pytest configuration for shared test fixtures and environment hooks.

Updates:
  v0.2.0 - 2025-12-17 - Provide fake safe storage, recorders, and wired service fixtures.
  v0.1.0 - 2025-12-15 - Isolate tests from LLM_VAULT_* environment and working-directory config.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from core.diagnostics import DiagnosticsEvent
from core.encryption import EncryptionService
from core.profile_service import ProfileService
from core.profile_vault import InMemoryProfileVaultStore, ProfileVaultService

BASE_TIMESTAMP = 1_700_000_000_000


class FakeSafeStorage:
    """Reversible in-memory stand-in for a platform keychain."""

    def __init__(
        self,
        *,
        available: bool = True,
        fail_encrypt: bool = False,
        fail_decrypt: bool = False,
        raise_on_check: bool = False,
    ) -> None:
        self.available = available
        self.fail_encrypt = fail_encrypt
        self.fail_decrypt = fail_decrypt
        self.raise_on_check = raise_on_check

    def is_encryption_available(self) -> bool:
        if self.raise_on_check:
            raise RuntimeError("keychain locked")
        return self.available

    def encrypt_string(self, plaintext: str) -> bytes:
        if self.fail_encrypt:
            raise RuntimeError("encrypt failed")
        return b"sealed:" + plaintext.encode("utf-8")[::-1]

    def decrypt_string(self, data: bytes) -> str:
        if self.fail_decrypt:
            raise RuntimeError("decrypt failed")
        if not data.startswith(b"sealed:"):
            raise ValueError("not sealed")
        return data.removeprefix(b"sealed:")[::-1].decode("utf-8")


class RecordingRecorder:
    """Diagnostics recorder capturing events in memory."""

    def __init__(self) -> None:
        self.events: list[DiagnosticsEvent] = []

    def record(self, event: DiagnosticsEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]


class Clock:
    """Deterministic epoch-millisecond clock advancing one second per call."""

    def __init__(self, start: int = BASE_TIMESTAMP, step: int = 1000) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> int:
        value = self.current
        self.current += self.step
        return value


def make_profile_data(**overrides: Any) -> dict[str, Any]:
    """Return a valid llama.cpp profile mapping keyed by camelCase aliases."""
    data: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "name": "Local llama",
        "providerType": "llama.cpp",
        "endpointUrl": "http://localhost:8080",
        "apiKey": "",
        "modelId": None,
        "isActive": False,
        "consentTimestamp": None,
        "createdAt": BASE_TIMESTAMP,
        "modifiedAt": BASE_TIMESTAMP,
    }
    data.update(overrides)
    return data


def make_azure_profile_data(**overrides: Any) -> dict[str, Any]:
    data = make_profile_data(
        name="Azure GPT",
        providerType="azure",
        endpointUrl="https://contoso.openai.azure.com/openai/deployments/gpt4o",
        apiKey="azure-secret",
        modelId="gpt-4o",
        consentTimestamp=BASE_TIMESTAMP,
    )
    data.update(overrides)
    return data


@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> Iterator[None]:
    """Keep ambient LLM_VAULT_* variables and cwd config files out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("LLM_VAULT_"):
            monkeypatch.delenv(key, raising=False)
    workdir = tmp_path_factory.mktemp("cwd")
    monkeypatch.chdir(workdir)
    yield


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def uuid_factory() -> Callable[[], str]:
    counter = iter(range(1, 10_000))
    return lambda: str(uuid.UUID(int=next(counter)))


@pytest.fixture()
def vault_store() -> InMemoryProfileVaultStore:
    return InMemoryProfileVaultStore()


@pytest.fixture()
def vault_service(vault_store: InMemoryProfileVaultStore) -> ProfileVaultService:
    return ProfileVaultService(vault_store)


@pytest.fixture()
def safe_storage() -> FakeSafeStorage:
    return FakeSafeStorage()


@pytest.fixture()
def encryption_service(safe_storage: FakeSafeStorage, clock: Clock) -> EncryptionService:
    return EncryptionService(safe_storage=safe_storage, now=clock, platform="linux")


@pytest.fixture()
def recorder() -> RecordingRecorder:
    return RecordingRecorder()


@pytest.fixture()
def profile_service(
    vault_service: ProfileVaultService,
    encryption_service: EncryptionService,
    recorder: RecordingRecorder,
    clock: Clock,
    uuid_factory: Callable[[], str],
) -> ProfileService:
    return ProfileService(
        vault_service,
        encryption_service,
        diagnostics_recorder=recorder,
        now=clock,
        uuid_factory=uuid_factory,
    )
