"""Business rules for creating, updating, deleting, and activating LLM profiles.

Updates:
  v0.3.0 - 2025-12-18 - Re-synchronise the vault encryption flag after every mutation.
  v0.2.0 - 2025-12-17 - Emit best-effort diagnostics events for profile lifecycle changes.
  v0.1.0 - 2025-12-15 - Introduce ProfileService with strict payload validation and redaction.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from models.llm_profile import (
    ActivateProfilePayload,
    CreateProfilePayload,
    DeleteProfilePayload,
    LLMProfile,
    ProfileVault,
    UpdateProfilePayload,
    format_validation_issues,
)

from .diagnostics import ProfileDiagnosticsEvent, record_diagnostics_event
from .exceptions import (
    AlternateProfileNotFoundError,
    ProfileNotFoundError,
    ProfileValidationError,
    ProfileVaultWriteError,
)

if TYPE_CHECKING:
    from .diagnostics import DiagnosticsEventRecorder
    from .encryption import EncryptionResult, EncryptionService
    from .profile_vault import ProfileVaultService

logger = logging.getLogger("llm_vault.profiles")

TRACKED_UPDATE_FIELDS: tuple[str, ...] = (
    "name",
    "provider_type",
    "endpoint_url",
    "api_key",
    "model_id",
    "is_active",
    "consent_timestamp",
)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def _uuid4_text() -> str:
    return str(uuid.uuid4())


def normalize_model_id(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def format_warning(warnings: list[str | None]) -> str | None:
    filtered = [warning for warning in warnings if warning and warning.strip()]
    return " ".join(filtered) if filtered else None


def duplicate_name_warnings(
    vault: ProfileVault, profile_name: str, exclude_id: str | None = None
) -> list[str]:
    """Warn when another profile already uses *profile_name* (case-insensitive)."""
    normalized = profile_name.strip().casefold()
    for profile in vault.profiles:
        if exclude_id is not None and profile.id == exclude_id:
            continue
        if profile.name.strip().casefold() == normalized:
            return [f'Profile name "{profile_name.strip()}" already exists.']
    return []


def diff_profiles(before: LLMProfile, after: LLMProfile) -> list[str]:
    """Return the camelCase names of tracked fields that changed."""
    return [
        LLMProfile.model_fields[name].alias or name
        for name in TRACKED_UPDATE_FIELDS
        if getattr(before, name) != getattr(after, name)
    ]


def sort_profiles(profiles: list[LLMProfile]) -> list[LLMProfile]:
    return sorted(profiles, key=lambda profile: (not profile.is_active, profile.name.casefold()))


@dataclass(frozen=True, slots=True)
class CreateProfileResult:
    profile: LLMProfile
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"profile": self.profile.to_dict()}
        if self.warning:
            payload["warning"] = self.warning
        return payload


@dataclass(frozen=True, slots=True)
class UpdateProfileResult:
    profile: LLMProfile
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"profile": self.profile.to_dict()}
        if self.warning:
            payload["warning"] = self.warning
        return payload


@dataclass(frozen=True, slots=True)
class DeleteProfileResult:
    deleted_id: str
    new_active_profile_id: str | None
    requires_user_selection: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "deletedId": self.deleted_id,
            "newActiveProfileId": self.new_active_profile_id,
            "requiresUserSelection": self.requires_user_selection,
        }


@dataclass(frozen=True, slots=True)
class ActivateProfileResult:
    active_profile: LLMProfile
    deactivated_profile_id: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "activeProfile": self.active_profile.to_dict(),
            "deactivatedProfileId": self.deactivated_profile_id,
        }


@dataclass(frozen=True, slots=True)
class ListProfilesResult:
    profiles: list[LLMProfile] = field(default_factory=list)
    encryption_available: bool = False
    active_profile_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "profiles": [profile.to_dict() for profile in self.profiles],
            "encryptionAvailable": self.encryption_available,
            "activeProfileId": self.active_profile_id,
        }


class ProfileService:
    """Validate profile payloads and apply them to the vault.

    Every profile handed back to callers is redacted; raw or encrypted
    credentials never leave this service.
    """

    def __init__(
        self,
        vault_service: ProfileVaultService,
        encryption_service: EncryptionService,
        *,
        diagnostics_recorder: DiagnosticsEventRecorder | None = None,
        now: Callable[[], int] | None = None,
        uuid_factory: Callable[[], str] | None = None,
    ) -> None:
        self._vault_service = vault_service
        self._encryption_service = encryption_service
        self._diagnostics_recorder = diagnostics_recorder
        self._now = now or _epoch_ms
        self._uuid = uuid_factory or _uuid4_text

    async def list_profiles(self) -> ListProfilesResult:
        vault, encryption_available = self._sync_encryption_availability(
            self._vault_service.load_vault()
        )
        ordered = sort_profiles(vault.profiles)
        active_id = next((profile.id for profile in ordered if profile.is_active), None)
        return ListProfilesResult(
            profiles=[profile.redacted() for profile in ordered],
            encryption_available=encryption_available,
            active_profile_id=active_id,
        )

    async def create_profile(
        self, payload: CreateProfilePayload | Mapping[str, Any]
    ) -> CreateProfileResult:
        parsed = self._parse_payload(CreateProfilePayload, payload, "create")
        vault = self._vault_service.load_vault()
        now = self._now()
        profile_id = self._uuid()
        should_activate = vault.active_profile is None

        encryption = self._encrypt_api_key(parsed.api_key)
        candidate = self._validate_profile(
            {
                "id": profile_id,
                "name": parsed.name.strip(),
                "providerType": parsed.provider_type,
                "endpointUrl": parsed.endpoint_url.strip(),
                "apiKey": encryption.value,
                "modelId": normalize_model_id(parsed.model_id),
                "isActive": should_activate,
                "consentTimestamp": parsed.consent_timestamp,
                "createdAt": now,
                "modifiedAt": now,
            }
        )

        persisted = self._vault_service.add_profile(candidate)
        synchronized, _ = self._sync_encryption_availability(persisted)
        saved = synchronized.find(profile_id)
        if saved is None:
            raise ProfileVaultWriteError(f"Failed to locate profile {profile_id} after creation")

        logger.info(
            "Created LLM profile",
            extra={
                "profile_id": saved.id,
                "provider_type": saved.provider_type,
                "is_active": saved.is_active,
            },
        )
        await self._record(ProfileDiagnosticsEvent.for_profile("llm_profile_created", saved, now))
        warning = format_warning(
            [encryption.warning, *duplicate_name_warnings(vault, saved.name, saved.id)]
        )
        return CreateProfileResult(profile=saved.redacted(), warning=warning)

    async def update_profile(
        self, payload: UpdateProfilePayload | Mapping[str, Any]
    ) -> UpdateProfileResult:
        parsed = self._parse_payload(UpdateProfilePayload, payload, "update")
        vault = self._vault_service.load_vault()
        existing = vault.find(parsed.id)
        if existing is None:
            raise ProfileNotFoundError(parsed.id)

        now = self._now()
        warnings: list[str | None] = []
        api_key = existing.api_key
        if parsed.provided("api_key") and parsed.api_key is not None:
            encryption = self._encrypt_api_key(parsed.api_key)
            api_key = encryption.value
            warnings.append(encryption.warning)

        candidate_data = existing.to_dict()
        candidate_data.update(
            {
                "name": (parsed.name if parsed.name is not None else existing.name).strip(),
                "providerType": parsed.provider_type or existing.provider_type,
                "endpointUrl": (parsed.endpoint_url or existing.endpoint_url).strip(),
                "apiKey": api_key,
                "modelId": (
                    normalize_model_id(parsed.model_id)
                    if parsed.provided("model_id")
                    else existing.model_id
                ),
                "consentTimestamp": (
                    parsed.consent_timestamp
                    if parsed.provided("consent_timestamp")
                    else existing.consent_timestamp
                ),
                "modifiedAt": now,
            }
        )
        candidate = self._validate_profile(candidate_data)

        data = vault.to_dict()
        data["profiles"] = [
            candidate.to_dict() if entry["id"] == existing.id else entry
            for entry in data["profiles"]
        ]
        persisted = self._vault_service.save_vault(data)
        synchronized, _ = self._sync_encryption_availability(persisted)
        saved = synchronized.find(existing.id)
        if saved is None:
            raise ProfileVaultWriteError(f"Profile {existing.id} missing after update")

        changes = diff_profiles(existing, saved)
        if changes:
            logger.info(
                "Updated LLM profile",
                extra={"profile_id": saved.id, "changes": changes},
            )
            await self._record(
                ProfileDiagnosticsEvent.for_profile("llm_profile_updated", saved, now, changes)
            )
        warnings.extend(duplicate_name_warnings(vault, saved.name, saved.id))
        return UpdateProfileResult(profile=saved.redacted(), warning=format_warning(warnings))

    async def delete_profile(
        self, payload: DeleteProfilePayload | Mapping[str, Any]
    ) -> DeleteProfileResult:
        """Remove a profile, optionally handing the active flag to an alternate."""
        parsed = self._parse_payload(DeleteProfilePayload, payload, "delete")
        vault = self._vault_service.load_vault()
        target = vault.find(parsed.id)
        if target is None:
            raise ProfileNotFoundError(parsed.id)

        now = self._now()
        remaining = [profile.to_dict() for profile in vault.profiles if profile.id != target.id]
        new_active_id: str | None = None
        requires_user_selection = False

        if target.is_active:
            alternate_id = parsed.activate_alternate_id
            if alternate_id:
                if not any(entry["id"] == alternate_id for entry in remaining):
                    raise AlternateProfileNotFoundError(alternate_id)
                for entry in remaining:
                    if entry["id"] == alternate_id:
                        entry.update(isActive=True, modifiedAt=now)
                    elif entry["isActive"]:
                        entry.update(isActive=False, modifiedAt=now)
                new_active_id = alternate_id
            else:
                requires_user_selection = bool(remaining)
                for entry in remaining:
                    if entry["isActive"]:
                        entry.update(isActive=False, modifiedAt=now)

        data = vault.to_dict()
        data["profiles"] = remaining
        persisted = self._vault_service.save_vault(data)
        self._sync_encryption_availability(persisted)

        logger.info(
            "Deleted LLM profile",
            extra={
                "profile_id": target.id,
                "new_active_profile_id": new_active_id,
                "requires_user_selection": requires_user_selection,
            },
        )
        await self._record(ProfileDiagnosticsEvent.for_profile("llm_profile_deleted", target, now))
        return DeleteProfileResult(
            deleted_id=target.id,
            new_active_profile_id=new_active_id,
            requires_user_selection=requires_user_selection,
        )

    async def activate_profile(
        self, payload: ActivateProfilePayload | Mapping[str, Any]
    ) -> ActivateProfileResult:
        parsed = self._parse_payload(ActivateProfilePayload, payload, "activate")
        vault = self._vault_service.load_vault()
        target = vault.find(parsed.id)
        if target is None:
            raise ProfileNotFoundError(parsed.id)

        now = self._now()
        deactivated_id: str | None = None
        data = vault.to_dict()
        for entry in data["profiles"]:
            if entry["id"] == target.id:
                entry.update(isActive=True, modifiedAt=now)
            elif entry["isActive"]:
                deactivated_id = entry["id"]
                entry.update(isActive=False, modifiedAt=now)

        persisted = self._vault_service.save_vault(data)
        synchronized, _ = self._sync_encryption_availability(persisted)
        saved = synchronized.find(target.id)
        if saved is None:
            raise ProfileVaultWriteError(f"Profile {target.id} missing after activation")

        logger.info(
            "Activated LLM profile",
            extra={"profile_id": saved.id, "deactivated_profile_id": deactivated_id},
        )
        await self._record(ProfileDiagnosticsEvent.for_profile("llm_profile_activated", saved, now))
        return ActivateProfileResult(
            active_profile=saved.redacted(), deactivated_profile_id=deactivated_id
        )

    def _encrypt_api_key(self, api_key: str) -> EncryptionResult:
        return self._encryption_service.encrypt(api_key.strip())

    @staticmethod
    def _parse_payload[PayloadT: BaseModel](
        model: type[PayloadT], payload: PayloadT | Mapping[str, Any], action: str
    ) -> PayloadT:
        if isinstance(payload, model):
            return payload
        try:
            return model.model_validate(dict(payload))  # type: ignore[arg-type]
        except ValidationError as exc:
            issues = format_validation_issues(exc)
            raise ProfileValidationError(
                f"Invalid {action} profile payload: {'; '.join(issues)}",
                details=issues,
            ) from exc

    @staticmethod
    def _validate_profile(candidate: Mapping[str, Any]) -> LLMProfile:
        try:
            return LLMProfile.model_validate(dict(candidate))
        except ValidationError as exc:
            issues = format_validation_issues(exc)
            raise ProfileValidationError(
                f"Profile validation failed: {'; '.join(issues)}",
                details=issues,
            ) from exc

    def _sync_encryption_availability(self, vault: ProfileVault) -> tuple[ProfileVault, bool]:
        available = self._encryption_service.get_status().encryption_available
        if vault.encryption_available == available:
            return vault, available
        data = vault.to_dict()
        data["encryptionAvailable"] = available
        return self._vault_service.save_vault(data), available

    async def _record(self, event: ProfileDiagnosticsEvent) -> None:
        await record_diagnostics_event(self._diagnostics_recorder, event)


__all__ = [
    "ActivateProfileResult",
    "CreateProfileResult",
    "DeleteProfileResult",
    "ListProfilesResult",
    "ProfileService",
    "TRACKED_UPDATE_FIELDS",
    "UpdateProfileResult",
    "diff_profiles",
    "duplicate_name_warnings",
    "format_warning",
    "normalize_model_id",
    "sort_profiles",
]
