"""Single-attempt test prompt execution against a stored LLM profile.

A test prompt resolves a profile, decrypts its credential, sends one request
through the provider strategy table, and folds every outcome into a validated
:class:`~models.test_prompt.TestPromptResult`. Only three situations raise: a
malformed request, an unknown/missing profile, and the client-side timer
expiring before response headers arrive
(:class:`~core.exceptions.TestPromptTimeoutError`). Provider
and transport failures, including provider-reported timeouts, come back as
failed results.

Updates:
  v0.3.1 - 2025-12-19 - Reject malformed or oversized requests before any provider call.
  v0.3.0 - 2025-12-18 - Keep rolling transcripts per profile and attach remediation hints.
  v0.2.0 - 2025-12-17 - Separate client-side timer expiry from transport timeouts.
  v0.1.0 - 2025-12-15 - Introduce TestPromptService on httpx.AsyncClient.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from models.llm_profile import format_validation_issues
from models.test_prompt import (
    MAX_TRANSCRIPT_TEXT_LENGTH,
    TestPromptRequest,
    TestPromptResult,
    TranscriptMessage,
    TranscriptRole,
)

from .diagnostics import TestPromptDiagnosticsEvent, record_diagnostics_event
from .exceptions import (
    NoActiveProfileError,
    ProfileNotFoundError,
    ProfileValidationError,
    TestPromptTimeoutError,
)
from .providers import (
    INVALID_RESPONSE_CODE,
    PROVIDER_STRATEGIES,
    TIMEOUT_ERROR_CODE,
    ProviderError,
    ProviderOptions,
    ProviderStrategy,
    classify_network_error,
)

if TYPE_CHECKING:
    from models.llm_profile import LLMProfile

    from .diagnostics import DiagnosticsEventRecorder
    from .encryption import EncryptionService
    from .profile_vault import ProfileVaultService
    from .transcript_store import TestTranscriptStore

logger = logging.getLogger("llm_vault.test_prompt")

DEFAULT_PROMPT = "Hello, can you respond?"
DEFAULT_TIMEOUT_MS = 10_000
MAX_RESPONSE_LENGTH = 500
RESPONSE_TRUNCATION_SUFFIX = "..."
TRANSCRIPT_TRUNCATION_SUFFIX = "…"
MAX_ERROR_MESSAGE_LENGTH = 1000
MAX_ERROR_CODE_LENGTH = 100
DEFAULT_REMEDIATION = "Check your configuration and try again"

REMEDIATION_HINTS: dict[str, str] = {
    "TIMEOUT": "Confirm the server is running and responsive, then retry the test prompt.",
    "ECONNREFUSED": "Start the provider server or correct the endpoint host and port.",
    "ENOTFOUND": "Check the endpoint hostname and your network connection.",
    "ECONNRESET": "Inspect the provider server logs for crashes or restarts.",
    "NETWORK_ERROR": "Check your network connection and the endpoint URL.",
    "401": "Verify the API key saved in this profile.",
    "403": "Confirm the API key has access to the requested model or deployment.",
    "404": "Check the endpoint path and model or deployment name.",
    "429": "Wait a few minutes before sending another test prompt.",
    "503": "The provider is temporarily unavailable; retry later.",
    "DEPLOYMENTNOTFOUND": "Verify the Azure deployment name in the endpoint URL and model id.",
    "INTERNALSERVERERROR": "Check the Azure status page and retry.",
    "INVALID_REQUEST": "Review the prompt text and request format.",
    "SERVER_ERROR": "Check the llama.cpp server logs.",
    INVALID_RESPONSE_CODE: "Confirm the endpoint implements the OpenAI chat completions API.",
}

_ANSI_ESCAPE_PATTERN = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")
_CONTROL_CHARACTER_PATTERN = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def normalize_prompt(prompt_text: str | None) -> str:
    if not prompt_text or not prompt_text.strip():
        return DEFAULT_PROMPT
    return prompt_text.strip()


def sanitize_response_text(value: str) -> str:
    """Strip ANSI escapes and control characters, then trim whitespace."""
    without_ansi = _ANSI_ESCAPE_PATTERN.sub("", value)
    return _CONTROL_CHARACTER_PATTERN.sub("", without_ansi).strip()


def truncate_response_text(value: str) -> str:
    if len(value) <= MAX_RESPONSE_LENGTH:
        return value
    keep = MAX_RESPONSE_LENGTH - len(RESPONSE_TRUNCATION_SUFFIX)
    return f"{value[:keep]}{RESPONSE_TRUNCATION_SUFFIX}"


def truncate_error_message(value: str) -> str:
    sanitized = _CONTROL_CHARACTER_PATTERN.sub("", value).strip()
    if len(sanitized) > MAX_ERROR_MESSAGE_LENGTH:
        return f"{sanitized[: MAX_ERROR_MESSAGE_LENGTH - 3]}..."
    return sanitized


def build_transcript_message(role: TranscriptRole, text: str) -> TranscriptMessage:
    """Return a transcript message, truncating text beyond the display limit."""
    if len(text) <= MAX_TRANSCRIPT_TEXT_LENGTH:
        return TranscriptMessage(role=role, text=text, truncated=False)
    keep = MAX_TRANSCRIPT_TEXT_LENGTH - len(TRANSCRIPT_TRUNCATION_SUFFIX)
    return TranscriptMessage(
        role=role,
        text=f"{text[:keep]}{TRANSCRIPT_TRUNCATION_SUFFIX}",
        truncated=True,
    )


def remediation_for(error_code: str) -> str:
    return (
        REMEDIATION_HINTS.get(error_code)
        or REMEDIATION_HINTS.get(error_code.upper())
        or DEFAULT_REMEDIATION
    )


@dataclass(slots=True)
class _Timing:
    latency_ms: int | None
    total_time_ms: int


@dataclass(slots=True)
class TestPromptService:
    """Run one test prompt per call and record its outcome."""

    __test__ = False

    vault_service: ProfileVaultService
    encryption_service: EncryptionService
    transcript_store: TestTranscriptStore
    diagnostics_recorder: DiagnosticsEventRecorder | None = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    provider_options: ProviderOptions = field(default_factory=ProviderOptions)
    client_factory: Callable[[], httpx.AsyncClient] | None = None
    strategies: Mapping[str, ProviderStrategy] = field(
        default_factory=lambda: dict(PROVIDER_STRATEGIES)
    )
    now: Callable[[], int] = _epoch_ms
    monotonic: Callable[[], float] = time.perf_counter

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be greater than zero")

    async def test_prompt(
        self, request: TestPromptRequest | Mapping[str, Any] | None = None
    ) -> TestPromptResult:
        """Execute a single test prompt and return its validated result."""
        parsed_request = self._parse_request(request)
        prompt_text = normalize_prompt(parsed_request.prompt_text)
        profile = self._resolve_profile(parsed_request.profile_id)
        api_key = self._decrypt_api_key(profile)
        timestamp = self.now()
        strategy = self.strategies[profile.provider_type]
        provider_request = strategy.build_request(
            profile, prompt_text, api_key, self.provider_options
        )

        manage_client = self.client_factory is None
        client = self._open_client()
        started = self.monotonic()
        latency_ms: int | None = None
        try:
            timer = asyncio.timeout(self.timeout_ms / 1000)
            try:
                async with timer:
                    response = await client.send(
                        client.build_request(
                            "POST",
                            provider_request.url,
                            headers=provider_request.headers,
                            json=provider_request.body,
                        ),
                        stream=True,
                    )
            except TimeoutError as exc:
                if not timer.expired():
                    raise
                self._record_abort(profile)
                logger.warning(
                    "Test prompt timed out",
                    extra={"profile_id": profile.id, "timeout_ms": self.timeout_ms},
                )
                raise TestPromptTimeoutError(self.timeout_ms) from exc
            latency_ms = self._elapsed_ms(started)
            try:
                await response.aread()
            finally:
                await response.aclose()
            total_ms = max(latency_ms, self._elapsed_ms(started))
        except TestPromptTimeoutError:
            raise
        except (httpx.HTTPError, OSError) as exc:
            error = classify_network_error(exc, provider_request.url, self.timeout_ms)
            timing = _Timing(latency_ms=None, total_time_ms=self._elapsed_ms(started))
            return await self._finish_failure(profile, prompt_text, timestamp, timing, error)
        finally:
            if manage_client:
                await client.aclose()

        timing = _Timing(latency_ms=latency_ms, total_time_ms=total_ms)
        raw_body = response.text
        if not response.is_success:
            error = strategy.map_error(response.status_code, raw_body, provider_request.url)
            return await self._finish_failure(
                profile, prompt_text, timestamp, _Timing(None, total_ms), error
            )

        payload = strategy.parse_success(raw_body)
        response_text = (
            truncate_response_text(sanitize_response_text(payload.response_text))
            if payload.response_text
            else ""
        )
        if not response_text:
            error = ProviderError(
                INVALID_RESPONSE_CODE, "Provider response did not include any assistant text."
            )
            return await self._finish_failure(
                profile, prompt_text, timestamp, _Timing(None, total_ms), error
            )

        transcript = self.transcript_store.update(
            profile.id,
            [
                build_transcript_message("user", prompt_text),
                build_transcript_message("assistant", response_text),
            ],
            "success",
            timing.latency_ms,
        )
        result = TestPromptResult(
            profile_id=profile.id,
            profile_name=profile.name,
            provider_type=profile.provider_type,
            success=True,
            prompt_text=prompt_text,
            response_text=response_text,
            model_name=payload.model_name or profile.model_id,
            latency_ms=timing.latency_ms,
            total_time_ms=timing.total_time_ms,
            timestamp=timestamp,
            transcript=transcript,
        )
        logger.info(
            "Test prompt succeeded",
            extra={
                "profile_id": profile.id,
                "provider_type": profile.provider_type,
                "latency_ms": timing.latency_ms,
            },
        )
        await record_diagnostics_event(self.diagnostics_recorder, TestPromptDiagnosticsEvent(result))
        return result

    def _parse_request(
        self, request: TestPromptRequest | Mapping[str, Any] | None
    ) -> TestPromptRequest:
        if request is None:
            return TestPromptRequest()
        if isinstance(request, TestPromptRequest):
            return request
        try:
            return TestPromptRequest.model_validate(dict(request))
        except ValidationError as exc:
            issues = format_validation_issues(exc)
            raise ProfileValidationError(
                f"Invalid test prompt request: {'; '.join(issues)}",
                details=issues,
            ) from exc

    def _resolve_profile(self, profile_id: str | None) -> LLMProfile:
        if profile_id:
            profile = self.vault_service.get_profile(profile_id)
            if profile is None:
                raise ProfileNotFoundError(profile_id)
            return profile
        active = self.vault_service.load_vault().active_profile
        if active is None:
            raise NoActiveProfileError()
        return active

    def _decrypt_api_key(self, profile: LLMProfile) -> str:
        try:
            return self.encryption_service.decrypt(profile.api_key).value
        except Exception:  # noqa: BLE001 - fall back to the stored value
            logger.debug("Credential decryption raised; using stored value", exc_info=True)
            return profile.api_key

    def _open_client(self) -> httpx.AsyncClient:
        if self.client_factory is not None:
            return self.client_factory()
        # Transport timeouts stay above the client-side timer so expiry is
        # reported as TestPromptTimeoutError while body reads remain bounded.
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_ms * 2 / 1000))

    def _elapsed_ms(self, started: float) -> int:
        return max(1, round((self.monotonic() - started) * 1000))

    def _record_abort(self, profile: LLMProfile) -> None:
        self.transcript_store.clear(profile.id)
        self.transcript_store.update(
            profile.id,
            [],
            "timeout",
            None,
            TIMEOUT_ERROR_CODE,
            remediation_for(TIMEOUT_ERROR_CODE),
        )

    async def _finish_failure(
        self,
        profile: LLMProfile,
        prompt_text: str,
        timestamp: int,
        timing: _Timing,
        error: ProviderError,
    ) -> TestPromptResult:
        error_code = error.error_code.strip()[:MAX_ERROR_CODE_LENGTH] or "UNKNOWN_ERROR"
        error_message = truncate_error_message(error.error_message) or (
            f"Request failed with error code {error_code}"
        )
        self.transcript_store.clear(profile.id)
        transcript = self.transcript_store.update(
            profile.id,
            [],
            "timeout" if error_code == TIMEOUT_ERROR_CODE else "error",
            None,
            error_code,
            remediation_for(error_code),
        )
        result = TestPromptResult(
            profile_id=profile.id,
            profile_name=profile.name,
            provider_type=profile.provider_type,
            success=False,
            prompt_text=prompt_text,
            response_text=None,
            model_name=None,
            latency_ms=None,
            total_time_ms=timing.total_time_ms,
            error_code=error_code,
            error_message=error_message,
            timestamp=timestamp,
            transcript=transcript,
        )
        logger.info(
            "Test prompt failed",
            extra={
                "profile_id": profile.id,
                "provider_type": profile.provider_type,
                "error_code": error_code,
            },
        )
        await record_diagnostics_event(self.diagnostics_recorder, TestPromptDiagnosticsEvent(result))
        return result


__all__ = [
    "DEFAULT_PROMPT",
    "DEFAULT_REMEDIATION",
    "DEFAULT_TIMEOUT_MS",
    "REMEDIATION_HINTS",
    "TestPromptService",
    "build_transcript_message",
    "normalize_prompt",
    "remediation_for",
    "sanitize_response_text",
    "truncate_error_message",
    "truncate_response_text",
]
