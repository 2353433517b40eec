"""LLM provider profile data models and payload schemas.

Updates:
  v0.3.0 - 2025-12-16 - Add strict create/update/delete/activate payload schemas.
  v0.2.0 - 2025-12-15 - Enforce provider endpoint rules and single-active vault invariant.
  v0.1.0 - 2025-12-14 - Introduce LLMProfile and ProfileVault pydantic models.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any, Literal
from urllib.parse import urlsplit

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveInt,
    StringConstraints,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

ProviderType = Literal["llama.cpp", "azure", "custom"]

PROVIDER_TYPES: tuple[ProviderType, ...] = ("llama.cpp", "azure", "custom")
REMOTE_PROVIDERS: frozenset[str] = frozenset({"azure", "custom"})
LOCAL_HOSTNAMES: frozenset[str] = frozenset({"localhost", "127.0.0.1", "::1"})
AZURE_HOST_SUFFIX = ".openai.azure.com"
VAULT_VERSION = "1.0.0"
API_KEY_PLACEHOLDER = "***REDACTED***"
SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"


def _ensure_uuid_text(value: str) -> str:
    """Reject identifiers that are not canonical UUID strings."""
    try:
        uuid.UUID(value)
    except ValueError as exc:
        raise ValueError("id must be a UUID string") from exc
    return value


def _hostname(url: str) -> str | None:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts.hostname


UUIDText = Annotated[str, AfterValidator(_ensure_uuid_text)]
ProfileName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
ModelId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]


class _CamelModel(BaseModel):
    """Base model serialising attributes with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        strict=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible mapping keyed by camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)


class LLMProfile(_CamelModel):
    """Connection profile for a single LLM provider endpoint."""

    id: UUIDText
    name: ProfileName
    provider_type: ProviderType
    endpoint_url: str
    # Ciphertext (base64) or plaintext when encryption is unavailable.
    api_key: str = Field(max_length=1000)
    model_id: ModelId | None = None
    is_active: bool = False
    consent_timestamp: PositiveInt | None = None
    created_at: PositiveInt
    modified_at: PositiveInt

    @property
    def is_remote(self) -> bool:
        return self.provider_type in REMOTE_PROVIDERS

    @model_validator(mode="after")
    def _validate_provider_rules(self) -> LLMProfile:
        issues: list[str] = []
        host = _hostname(self.endpoint_url)
        if host is None:
            raise ValueError("endpointUrl: endpointUrl must be a valid URL")
        scheme = urlsplit(self.endpoint_url).scheme.lower()

        if self.modified_at < self.created_at:
            issues.append("modifiedAt: modifiedAt must be greater than or equal to createdAt")

        if self.is_remote:
            if scheme != "https":
                issues.append("endpointUrl: Remote providers must use https:// endpoints")
            if self.consent_timestamp is None:
                issues.append("consentTimestamp: Remote providers require consentTimestamp")
            if not self.api_key.strip():
                issues.append("apiKey: Remote providers require an API key")
        else:
            if scheme not in {"http", "https"}:
                issues.append("endpointUrl: Local providers must use http:// or https://")
            if host.lower() not in LOCAL_HOSTNAMES:
                issues.append("endpointUrl: llama.cpp endpoints must point to localhost or 127.0.0.1")

        if self.provider_type == "azure":
            if not host.lower().endswith(AZURE_HOST_SUFFIX):
                issues.append("endpointUrl: Azure profiles must use a *.openai.azure.com endpoint")
            if self.model_id is None:
                issues.append("modelId: Azure profiles require modelId")

        if issues:
            raise ValueError("; ".join(issues))
        return self

    def redacted(self) -> LLMProfile:
        """Return a copy with the stored credential replaced by the placeholder."""
        return self.model_copy(update={"api_key": API_KEY_PLACEHOLDER})


class ProfileVault(_CamelModel):
    """Persisted collection of profiles plus encryption metadata."""

    profiles: list[LLMProfile] = Field(default_factory=list)
    encryption_available: bool = False
    version: Annotated[str, StringConstraints(pattern=SEMVER_PATTERN)] = VAULT_VERSION

    @model_validator(mode="after")
    def _validate_profiles(self) -> ProfileVault:
        ids = [profile.id for profile in self.profiles]
        if len(ids) != len(set(ids)):
            raise ValueError("profiles: Profile IDs must be unique")
        if sum(1 for profile in self.profiles if profile.is_active) > 1:
            raise ValueError("profiles: At most one profile can be active")
        return self

    @property
    def active_profile(self) -> LLMProfile | None:
        return next((profile for profile in self.profiles if profile.is_active), None)

    def find(self, profile_id: str) -> LLMProfile | None:
        return next((profile for profile in self.profiles if profile.id == profile_id), None)


class _StrictPayload(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        strict=True,
        extra="forbid",
    )


class CreateProfilePayload(_StrictPayload):
    """Caller supplied fields for a new profile."""

    name: Annotated[str, StringConstraints(min_length=1, max_length=100)]
    provider_type: ProviderType
    endpoint_url: Annotated[str, StringConstraints(min_length=1)]
    api_key: Annotated[str, StringConstraints(max_length=500)]
    model_id: Annotated[str, StringConstraints(max_length=200)] | None = None
    consent_timestamp: NonNegativeInt | None = None

    @model_validator(mode="after")
    def _validate_remote_requirements(self) -> CreateProfilePayload:
        if self.provider_type not in REMOTE_PROVIDERS:
            return self
        issues: list[str] = []
        if self.consent_timestamp is None:
            issues.append("consentTimestamp: consentTimestamp is required for remote providers")
        if not self.api_key.strip():
            issues.append("apiKey: apiKey is required for remote providers")
        if issues:
            raise ValueError("; ".join(issues))
        return self


class UpdateProfilePayload(_StrictPayload):
    """Partial update; only fields present in ``model_fields_set`` are applied."""

    id: UUIDText
    name: Annotated[str, StringConstraints(min_length=1, max_length=100)] | None = None
    provider_type: ProviderType | None = None
    endpoint_url: Annotated[str, StringConstraints(min_length=1)] | None = None
    api_key: Annotated[str, StringConstraints(max_length=500)] | None = None
    model_id: Annotated[str, StringConstraints(max_length=200)] | None = None
    consent_timestamp: NonNegativeInt | None = None

    def provided(self, field_name: str) -> bool:
        return field_name in self.model_fields_set


class DeleteProfilePayload(_StrictPayload):
    id: UUIDText
    activate_alternate_id: UUIDText | None = None


class ActivateProfilePayload(_StrictPayload):
    id: UUIDText


def format_validation_issues(exc: ValidationError) -> list[str]:
    """Flatten pydantic errors into ``path: message`` strings."""
    issues: list[str] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ()))
        message = str(error.get("msg", "invalid value")).removeprefix("Value error, ")
        if path:
            issues.append(f"{path}: {message}")
        elif ": " in message:
            issues.extend(part.strip() for part in message.split("; ") if part.strip())
        else:
            issues.append(f"(root): {message}")
    return issues


__all__ = [
    "API_KEY_PLACEHOLDER",
    "AZURE_HOST_SUFFIX",
    "ActivateProfilePayload",
    "CreateProfilePayload",
    "DeleteProfilePayload",
    "LLMProfile",
    "LOCAL_HOSTNAMES",
    "PROVIDER_TYPES",
    "ProfileVault",
    "ProviderType",
    "REMOTE_PROVIDERS",
    "UpdateProfilePayload",
    "VAULT_VERSION",
    "format_validation_issues",
]
