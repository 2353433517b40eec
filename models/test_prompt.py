"""Test prompt result and transcript models.

Updates:
  v0.2.1 - 2025-12-19 - Bound request prompt text to the result limit.
  v0.2.0 - 2025-12-17 - Attach rolling transcripts to test prompt results.
  v0.1.0 - 2025-12-15 - Introduce TestPromptResult with success/failure exclusivity.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, PositiveInt, StringConstraints, model_validator

from .llm_profile import ProviderType, UUIDText, _CamelModel

TranscriptRole = Literal["user", "assistant"]
TranscriptStatus = Literal["success", "error", "timeout"]

MAX_TRANSCRIPT_MESSAGES = 6
MAX_TRANSCRIPT_TEXT_LENGTH = 500
MAX_PROMPT_TEXT_LENGTH = 4000


class TranscriptMessage(_CamelModel):
    """Single user or assistant message retained in a transcript."""

    role: TranscriptRole
    text: Annotated[str, StringConstraints(min_length=1, max_length=MAX_TRANSCRIPT_TEXT_LENGTH)]
    truncated: bool = False


class TestTranscript(_CamelModel):
    """Rolling window of recent exchanges for one profile."""

    __test__ = False

    messages: list[TranscriptMessage] = Field(
        default_factory=list, max_length=MAX_TRANSCRIPT_MESSAGES
    )
    status: TranscriptStatus
    latency_ms: PositiveInt | None = None
    error_code: str | None = None
    remediation: str | None = None

    @model_validator(mode="after")
    def _validate_status_fields(self) -> TestTranscript:
        if self.status == "success":
            if self.latency_ms is None:
                raise ValueError("latencyMs: Successful transcripts must include latencyMs")
            return self
        issues: list[str] = []
        if self.messages:
            issues.append("messages: Failed transcripts must not retain messages")
        if not self.error_code:
            issues.append("errorCode: Failed transcripts must include errorCode")
        if issues:
            raise ValueError("; ".join(issues))
        return self


class TestPromptRequest(_CamelModel):
    """Optional profile override and prompt text for a test run."""

    __test__ = False

    profile_id: str | None = None
    prompt_text: Annotated[
        str, StringConstraints(strip_whitespace=True, max_length=MAX_PROMPT_TEXT_LENGTH)
    ] | None = None


class TestPromptResult(_CamelModel):
    """Uniform outcome of a single provider test prompt."""

    __test__ = False

    profile_id: UUIDText
    profile_name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    provider_type: ProviderType
    success: bool
    prompt_text: Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_PROMPT_TEXT_LENGTH),
    ]
    response_text: Annotated[str, StringConstraints(max_length=500)] | None = None
    model_name: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)
    ] | None = None
    latency_ms: PositiveInt | None = None
    total_time_ms: PositiveInt
    error_code: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)
    ] | None = None
    error_message: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)
    ] | None = None
    timestamp: PositiveInt
    transcript: TestTranscript

    @model_validator(mode="after")
    def _validate_outcome(self) -> TestPromptResult:
        issues: list[str] = []
        if self.success:
            if self.response_text is None:
                issues.append("responseText: Successful test prompts must include responseText")
            if self.latency_ms is None:
                issues.append("latencyMs: Successful test prompts must include latencyMs")
            if self.error_code is not None:
                issues.append("errorCode: Successful test prompts cannot include errorCode")
            if self.error_message is not None:
                issues.append("errorMessage: Successful test prompts cannot include errorMessage")
        else:
            if self.response_text is not None:
                issues.append("responseText: Failed test prompts must not include responseText")
            if self.latency_ms is not None:
                issues.append("latencyMs: Failed test prompts must not include latencyMs")
            if self.error_code is None:
                issues.append("errorCode: Failed test prompts must include errorCode")
            if self.error_message is None:
                issues.append("errorMessage: Failed test prompts must include errorMessage")
        if issues:
            raise ValueError("; ".join(issues))
        return self


__all__ = [
    "MAX_PROMPT_TEXT_LENGTH",
    "MAX_TRANSCRIPT_MESSAGES",
    "MAX_TRANSCRIPT_TEXT_LENGTH",
    "TestPromptRequest",
    "TestPromptResult",
    "TestTranscript",
    "TranscriptMessage",
    "TranscriptRole",
    "TranscriptStatus",
]
