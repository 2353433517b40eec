"""Profile vault persistence, validation, and self-healing reads.

The vault is stored as one JSON value. Every read runs the stored value through
:func:`normalize_vault`, validates the result, and writes it back when the
normalised form differs from what was stored.

Updates:
  v0.3.1 - 2025-12-19 - Remove the temporary file when a vault write fails.
  v0.3.0 - 2025-12-17 - Split normalisation into a pure function with explicit change detection.
  v0.2.0 - 2025-12-16 - Add JSON file store with atomic replace semantics.
  v0.1.0 - 2025-12-14 - Introduce ProfileVaultService and in-memory store.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol, cast, runtime_checkable

from pydantic import ValidationError

from models.llm_profile import (
    VAULT_VERSION,
    LLMProfile,
    ProfileVault,
    format_validation_issues,
)

from .exceptions import ProfileNotFoundError, ProfileVaultReadError, ProfileVaultWriteError

logger = logging.getLogger("llm_vault.vault")

PROFILE_VAULT_STORE_NAME = "llm-profiles"
PROFILE_VAULT_STORE_KEY = "vault"
_IMMUTABLE_FIELDS = ("id", "created_at")


def default_vault_data() -> dict[str, Any]:
    """Return the JSON form of an empty vault."""
    return {"profiles": [], "encryptionAvailable": False, "version": VAULT_VERSION}


@runtime_checkable
class ProfileVaultStore(Protocol):
    """Key/value backend holding the serialised vault."""

    def get(self) -> dict[str, Any] | None:
        """Return the stored vault mapping or ``None`` when nothing is stored."""
        ...

    def set(self, value: dict[str, Any]) -> None:
        """Replace the stored vault mapping."""
        ...

    def clear(self) -> None:
        """Remove the stored vault."""
        ...


class InMemoryProfileVaultStore:
    """Process-local store used by tests and ephemeral sessions."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._snapshot: dict[str, Any] | None = copy.deepcopy(dict(initial)) if initial else None

    def get(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._snapshot) if self._snapshot is not None else None

    def set(self, value: dict[str, Any]) -> None:
        self._snapshot = copy.deepcopy(value)

    def clear(self) -> None:
        self._snapshot = None


class JsonFileProfileVaultStore:
    """Persist the vault under the ``"vault"`` key of a JSON document."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            raw_contents = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ProfileVaultReadError(f"Unable to read profile vault file: {self._path}") from exc
        if not raw_contents.strip():
            return None
        try:
            document = json.loads(raw_contents)
        except json.JSONDecodeError as exc:
            raise ProfileVaultReadError(f"Invalid JSON in profile vault file: {self._path}") from exc
        if not isinstance(document, dict):
            return None
        value = cast("dict[str, Any]", document).get(PROFILE_VAULT_STORE_KEY)
        return cast("dict[str, Any]", value) if isinstance(value, dict) else None

    def set(self, value: dict[str, Any]) -> None:
        payload = json.dumps({PROFILE_VAULT_STORE_KEY: value}, ensure_ascii=False, indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            handle, temp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
        except OSError as exc:
            raise ProfileVaultWriteError(f"Unable to write profile vault file: {self._path}") from exc
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                stream.write(payload)
                stream.write("\n")
            os.replace(temp_name, self._path)
        except OSError as exc:
            Path(temp_name).unlink(missing_ok=True)
            raise ProfileVaultWriteError(f"Unable to write profile vault file: {self._path}") from exc

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


def _int_or_zero(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def _dedupe_profiles(entries: list[object]) -> list[dict[str, Any]]:
    """Drop non-profile entries and keep the last occurrence of each id."""
    seen: set[str] = set()
    kept: list[dict[str, Any]] = []
    for entry in reversed(entries):
        if not isinstance(entry, dict):
            continue
        profile = cast("dict[str, Any]", entry)
        profile_id = profile.get("id")
        if not isinstance(profile_id, str) or profile_id in seen:
            continue
        seen.add(profile_id)
        kept.append(copy.deepcopy(profile))
    kept.reverse()
    return kept


def _enforce_single_active(profiles: list[dict[str, Any]]) -> list[dict[str, Any]]:
    active = [profile for profile in profiles if profile.get("isActive") is True]
    if len(active) <= 1:
        return profiles
    winner = max(
        active,
        key=lambda profile: (
            _int_or_zero(profile.get("modifiedAt")),
            _int_or_zero(profile.get("createdAt")),
        ),
    )
    for profile in profiles:
        profile["isActive"] = profile is winner
    return profiles


def normalize_vault(candidate: object) -> dict[str, Any]:
    """Return a repaired copy of *candidate* without touching any store.

    Unknown shapes fall back to the empty vault, entries without a string id are
    dropped, duplicate ids keep their last occurrence, and when several profiles
    are active only the most recently modified (then most recently created) one
    stays active.
    """
    normalized = default_vault_data()
    if isinstance(candidate, Mapping):
        mapping = cast("Mapping[str, Any]", candidate)
        profiles = mapping.get("profiles")
        if isinstance(profiles, list):
            normalized["profiles"] = _dedupe_profiles(cast("list[object]", profiles))
        encryption_available = mapping.get("encryptionAvailable")
        if isinstance(encryption_available, bool):
            normalized["encryptionAvailable"] = encryption_available
        version = mapping.get("version")
        if isinstance(version, str) and version.strip():
            normalized["version"] = version
    normalized["profiles"] = _enforce_single_active(normalized["profiles"])
    return normalized


def _validate_vault(candidate: Mapping[str, Any], stage: str) -> ProfileVault:
    try:
        return ProfileVault.model_validate(candidate)
    except ValidationError as exc:
        message = (
            f"Profile vault {stage} validation failed: "
            f"{'; '.join(format_validation_issues(exc))}"
        )
        if stage == "read":
            raise ProfileVaultReadError(message) from exc
        raise ProfileVaultWriteError(message) from exc


def _to_mapping(vault: ProfileVault | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(vault, ProfileVault):
        return vault.to_dict()
    return copy.deepcopy(dict(vault))


def _profile_updates(partial: Mapping[str, Any]) -> dict[str, Any]:
    """Translate camelCase or snake_case keys into LLMProfile field names."""
    aliases = {
        (info.alias or name): name for name, info in LLMProfile.model_fields.items()
    }
    updates: dict[str, Any] = {}
    for key, value in partial.items():
        field_name = aliases.get(key, key)
        if field_name not in LLMProfile.model_fields:
            raise ProfileVaultWriteError(f"Unknown profile field: {key}")
        updates[field_name] = value
    return updates


class ProfileVaultService:
    """Own the persisted vault and hand out deep copies to callers."""

    def __init__(self, store: ProfileVaultStore) -> None:
        self._store = store

    def load_vault(self) -> ProfileVault:
        """Read, repair, and validate the stored vault."""
        stored = self._store.get()
        candidate: object = stored if stored is not None else default_vault_data()
        vault = _validate_vault(normalize_vault(candidate), "read")
        serialized = vault.to_dict()
        if stored is None or stored != serialized:
            if stored is not None:
                logger.info(
                    "Repaired stored profile vault",
                    extra={"profile_count": len(vault.profiles)},
                )
            self._store.set(serialized)
        return vault.model_copy(deep=True)

    def save_vault(self, vault: ProfileVault | Mapping[str, Any]) -> ProfileVault:
        """Validate *vault* against the full schema and replace the stored value."""
        validated = _validate_vault(_to_mapping(vault), "write")
        self._store.set(validated.to_dict())
        return validated.model_copy(deep=True)

    def get_profile(self, profile_id: str) -> LLMProfile | None:
        profile = self.load_vault().find(profile_id)
        return profile.model_copy(deep=True) if profile is not None else None

    def add_profile(self, profile: LLMProfile) -> ProfileVault:
        vault = self.load_vault()
        if vault.find(profile.id) is not None:
            raise ProfileVaultWriteError(f"Profile with id {profile.id} already exists")
        data = vault.to_dict()
        data["profiles"].append(profile.to_dict())
        return self.save_vault(data)

    def update_profile(self, profile_id: str, partial: Mapping[str, Any]) -> LLMProfile:
        """Merge *partial* into the stored profile; ``id`` and ``createdAt`` are immutable."""
        vault = self.load_vault()
        current = vault.find(profile_id)
        if current is None:
            raise ProfileNotFoundError(profile_id)
        updates = _profile_updates(partial)
        if "id" in updates and updates["id"] != profile_id:
            raise ProfileVaultWriteError("Profile id cannot be changed")
        if "created_at" in updates and updates["created_at"] != current.created_at:
            raise ProfileVaultWriteError("Profile createdAt cannot be changed")
        for field_name in _IMMUTABLE_FIELDS:
            updates.pop(field_name, None)

        merged = current.to_dict()
        for field_name, value in updates.items():
            merged[LLMProfile.model_fields[field_name].alias or field_name] = value
        data = vault.to_dict()
        data["profiles"] = [
            merged if entry["id"] == profile_id else entry for entry in data["profiles"]
        ]
        persisted = self.save_vault(data)
        updated = persisted.find(profile_id)
        if updated is None:  # pragma: no cover - save_vault keeps every id
            raise ProfileVaultWriteError(f"Profile {profile_id} missing after update")
        return updated.model_copy(deep=True)

    def delete_profile(self, profile_id: str) -> None:
        vault = self.load_vault()
        if vault.find(profile_id) is None:
            raise ProfileNotFoundError(profile_id)
        data = vault.to_dict()
        data["profiles"] = [entry for entry in data["profiles"] if entry["id"] != profile_id]
        self.save_vault(data)

    def set_encryption_available(self, available: bool) -> None:
        vault = self.load_vault()
        if vault.encryption_available == available:
            return
        data = vault.to_dict()
        data["encryptionAvailable"] = available
        self.save_vault(data)


__all__ = [
    "InMemoryProfileVaultStore",
    "JsonFileProfileVaultStore",
    "PROFILE_VAULT_STORE_KEY",
    "PROFILE_VAULT_STORE_NAME",
    "ProfileVaultService",
    "ProfileVaultStore",
    "default_vault_data",
    "normalize_vault",
]
