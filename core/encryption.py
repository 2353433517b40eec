"""Credential encryption with transparent plaintext fallback.

:class:`EncryptionService` never raises to its callers. Every adapter call is
converted into an explicit :class:`AdapterOk` or :class:`AdapterFailed` outcome,
and failures degrade to returning the input unchanged together with a fixed
warning and an :class:`EncryptionFallbackEvent`.

Updates:
  v0.3.1 - 2025-12-19 - Carry the checked adapter inside AdapterOk.
  v0.3.0 - 2025-12-17 - Model adapter calls as explicit outcomes instead of nested try blocks.
  v0.2.0 - 2025-12-16 - Add Fernet-backed safe storage adapter keyed from settings.
  v0.1.0 - 2025-12-14 - Introduce EncryptionService with fallback events and status.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger("llm_vault.encryption")

EncryptionOperation = Literal["encrypt", "decrypt", "status"]
EncryptionFallbackReason = Literal["unavailable", "encrypt-error", "decrypt-error"]

ENCRYPTION_FALLBACK_EVENT_TYPE = "llm_encryption_unavailable"
ENCRYPT_UNAVAILABLE_WARNING = (
    "System keychain is unavailable; sensitive credentials will be stored in plaintext."
)
ENCRYPT_ERROR_WARNING = (
    "System keychain failed to encrypt the credential; storing plaintext instead."
)
DECRYPT_ERROR_WARNING = (
    "System keychain failed to decrypt the credential; returning stored value as-is."
)
DECRYPT_UNAVAILABLE_WARNING = (
    "System keychain is unavailable; returning stored credential without decryption."
)


@runtime_checkable
class SafeStorageAdapter(Protocol):
    """Platform credential store capable of sealing short strings."""

    def is_encryption_available(self) -> bool: ...

    def encrypt_string(self, plaintext: str) -> bytes: ...

    def decrypt_string(self, data: bytes) -> str: ...


class FernetSafeStorage:
    """Safe storage adapter backed by a symmetric Fernet key.

    The adapter reports itself unavailable when no key is configured or the key
    is malformed, which routes the service into its plaintext fallback.
    """

    def __init__(self, key: str | bytes | None) -> None:
        self._fernet: Fernet | None = None
        self._key_error: str | None = None
        if not key:
            return
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, binascii.Error) as exc:
            self._key_error = str(exc)
            logger.warning("Ignoring malformed encryption key: %s", exc)

    @staticmethod
    def generate_key() -> str:
        """Return a new urlsafe base64 Fernet key."""
        return Fernet.generate_key().decode()

    def is_encryption_available(self) -> bool:
        return self._fernet is not None

    def encrypt_string(self, plaintext: str) -> bytes:
        if self._fernet is None:
            raise RuntimeError(self._key_error or "Encryption key is not configured")
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return base64.urlsafe_b64decode(token)

    def decrypt_string(self, data: bytes) -> str:
        if self._fernet is None:
            raise RuntimeError(self._key_error or "Encryption key is not configured")
        try:
            return self._fernet.decrypt(base64.urlsafe_b64encode(data)).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Stored credential could not be decrypted with the configured key") from exc


@dataclass(frozen=True, slots=True)
class FallbackError:
    name: str
    message: str


@dataclass(frozen=True, slots=True)
class EncryptionFallbackEvent:
    """Audit record describing a single encryption degradation."""

    operation: EncryptionOperation
    reason: EncryptionFallbackReason
    message: str
    timestamp: int
    platform: str
    error: FallbackError | None = None
    type: str = ENCRYPTION_FALLBACK_EVENT_TYPE

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "timestamp": self.timestamp,
            "platform": self.platform,
            "operation": self.operation,
            "reason": self.reason,
            "message": self.message,
        }
        if self.error is not None:
            payload["error"] = {"name": self.error.name, "message": self.error.message}
        return payload


@dataclass(frozen=True, slots=True)
class EncryptionResult:
    value: str
    was_encrypted: bool
    warning: str | None = None
    fallback_event: EncryptionFallbackEvent | None = None


@dataclass(frozen=True, slots=True)
class DecryptionResult:
    value: str
    was_decrypted: bool
    warning: str | None = None
    fallback_event: EncryptionFallbackEvent | None = None


@dataclass(frozen=True, slots=True)
class EncryptionStatus:
    encryption_available: bool
    last_fallback_event: EncryptionFallbackEvent | None = None


@dataclass(frozen=True, slots=True)
class AdapterOk[T]:
    """Adapter call completed and produced *value*."""

    value: T


@dataclass(frozen=True, slots=True)
class AdapterFailed:
    """Adapter call could not be completed."""

    reason: EncryptionFallbackReason
    error: BaseException | None = None


type AdapterOutcome[T] = AdapterOk[T] | AdapterFailed


def _normalise_error(error: object) -> FallbackError | None:
    if error is None:
        return None
    if isinstance(error, BaseException):
        return FallbackError(name=type(error).__name__, message=str(error))
    if isinstance(error, str):
        return FallbackError(name="UnknownError", message=error)
    try:
        message = json.dumps(error, default=str)
    except (TypeError, ValueError):
        message = repr(error)
    return FallbackError(name="UnknownError", message=message)


def _warning_for(operation: EncryptionOperation, reason: EncryptionFallbackReason) -> str:
    if reason == "encrypt-error":
        return ENCRYPT_ERROR_WARNING
    if reason == "decrypt-error":
        return DECRYPT_ERROR_WARNING
    if operation == "decrypt":
        return DECRYPT_UNAVAILABLE_WARNING
    return ENCRYPT_UNAVAILABLE_WARNING


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class EncryptionService:
    """Encrypt and decrypt credentials through an optional safe storage adapter."""

    safe_storage: SafeStorageAdapter | None = None
    on_fallback: Callable[[EncryptionFallbackEvent], object] | None = None
    now: Callable[[], int] = _epoch_ms
    platform: str = field(default_factory=lambda: sys.platform)
    last_fallback_event: EncryptionFallbackEvent | None = field(default=None, init=False)

    def _check_available(self) -> AdapterOutcome[SafeStorageAdapter]:
        storage = self.safe_storage
        if storage is None:
            return AdapterFailed("unavailable")
        try:
            available = bool(storage.is_encryption_available())
        except Exception as exc:  # noqa: BLE001 - adapter failures degrade to plaintext
            return AdapterFailed("unavailable", exc)
        return AdapterOk(storage) if available else AdapterFailed("unavailable")

    def _seal(self, plaintext: str) -> AdapterOutcome[str]:
        availability = self._check_available()
        if isinstance(availability, AdapterFailed):
            return availability
        try:
            sealed = availability.value.encrypt_string(plaintext)
        except Exception as exc:  # noqa: BLE001 - adapter failures degrade to plaintext
            return AdapterFailed("encrypt-error", exc)
        return AdapterOk(base64.b64encode(sealed).decode("ascii"))

    def _unseal(self, value: str) -> AdapterOutcome[str]:
        availability = self._check_available()
        if isinstance(availability, AdapterFailed):
            return availability
        try:
            data = base64.b64decode(value, validate=True)
            plaintext = availability.value.decrypt_string(data)
        except Exception as exc:  # noqa: BLE001 - adapter failures degrade to stored value
            return AdapterFailed("decrypt-error", exc)
        return AdapterOk(plaintext)

    def _emit_fallback(
        self,
        operation: EncryptionOperation,
        reason: EncryptionFallbackReason,
        error: object = None,
    ) -> EncryptionFallbackEvent:
        event = EncryptionFallbackEvent(
            operation=operation,
            reason=reason,
            message=_warning_for(operation, reason),
            timestamp=self.now(),
            platform=self.platform,
            error=_normalise_error(error),
        )
        self.last_fallback_event = event
        logger.warning(
            "Credential encryption fallback",
            extra={"operation": operation, "reason": reason},
        )
        if self.on_fallback is not None:
            try:
                self.on_fallback(event)
            except Exception:  # noqa: BLE001 - hook failures must not surface
                logger.debug("Encryption fallback hook failed", exc_info=True)
        return event

    def is_encryption_available(self) -> bool:
        """Return adapter availability, recording a status fallback when the check raises."""
        outcome = self._check_available()
        if isinstance(outcome, AdapterOk):
            return True
        if outcome.error is not None:
            self._emit_fallback("status", "unavailable", outcome.error)
        return False

    def encrypt(self, plaintext: str) -> EncryptionResult:
        outcome = self._seal(plaintext)
        if isinstance(outcome, AdapterOk):
            return EncryptionResult(value=outcome.value, was_encrypted=True)
        event = self._emit_fallback("encrypt", outcome.reason, outcome.error)
        return EncryptionResult(
            value=plaintext,
            was_encrypted=False,
            warning=event.message,
            fallback_event=event,
        )

    def decrypt(self, value: str) -> DecryptionResult:
        outcome = self._unseal(value)
        if isinstance(outcome, AdapterOk):
            return DecryptionResult(value=outcome.value, was_decrypted=True)
        event = self._emit_fallback("decrypt", outcome.reason, outcome.error)
        return DecryptionResult(
            value=value,
            was_decrypted=False,
            warning=event.message,
            fallback_event=event,
        )

    def get_status(self) -> EncryptionStatus:
        available = isinstance(self._check_available(), AdapterOk)
        return EncryptionStatus(
            encryption_available=available,
            last_fallback_event=self.last_fallback_event,
        )


__all__ = [
    "AdapterFailed",
    "AdapterOk",
    "DECRYPT_ERROR_WARNING",
    "DECRYPT_UNAVAILABLE_WARNING",
    "DecryptionResult",
    "ENCRYPT_ERROR_WARNING",
    "ENCRYPT_UNAVAILABLE_WARNING",
    "EncryptionFallbackEvent",
    "EncryptionResult",
    "EncryptionService",
    "EncryptionStatus",
    "FallbackError",
    "FernetSafeStorage",
    "SafeStorageAdapter",
]
