"""In-memory rolling transcripts for test prompts.

Each profile keeps at most three exchanges (six messages), newest first. The
store is a plain instance; callers that need shared history pass the same
instance to every :class:`~core.test_prompt.TestPromptService`.

Updates:
  v0.1.1 - 2025-12-17 - Drop module-level singleton in favour of injected instances.
  v0.1.0 - 2025-12-15 - Introduce TestTranscriptStore with per-profile capping.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from models.test_prompt import MAX_TRANSCRIPT_MESSAGES, TestTranscript

if TYPE_CHECKING:
    from collections.abc import Sequence

    from models.test_prompt import TranscriptMessage, TranscriptStatus


@dataclass(slots=True)
class _TranscriptEntry:
    transcript: TestTranscript
    updated_at: float


class TestTranscriptStore:
    """Per-profile transcript cache bounded by message count, not by profile count."""

    __test__ = False

    def __init__(self, max_messages: int = MAX_TRANSCRIPT_MESSAGES) -> None:
        self._max_messages = max_messages
        self._entries: dict[str, _TranscriptEntry] = {}

    def get(self, profile_id: str) -> TestTranscript | None:
        entry = self._entries.get(profile_id)
        return entry.transcript.model_copy(deep=True) if entry is not None else None

    def update(
        self,
        profile_id: str,
        messages: Sequence[TranscriptMessage],
        status: TranscriptStatus,
        latency_ms: int | None,
        error_code: str | None = None,
        remediation: str | None = None,
    ) -> TestTranscript:
        """Record an exchange outcome and return the stored transcript.

        Successful exchanges are prepended to any existing history and capped;
        any other status resets the message list.
        """
        retained: list[TranscriptMessage] = []
        if status == "success":
            existing = self._entries.get(profile_id)
            history = existing.transcript.messages if existing is not None else []
            retained = [*messages, *history][: self._max_messages]
        transcript = TestTranscript(
            messages=retained,
            status=status,
            latency_ms=latency_ms,
            error_code=error_code,
            remediation=remediation,
        )
        self._entries[profile_id] = _TranscriptEntry(transcript=transcript, updated_at=time.time())
        return transcript.model_copy(deep=True)

    def clear(self, profile_id: str) -> None:
        self._entries.pop(profile_id, None)

    def clear_all(self) -> None:
        self._entries.clear()

    def get_history_depth(self, profile_id: str) -> int:
        """Return the number of complete user/assistant exchanges retained."""
        entry = self._entries.get(profile_id)
        if entry is None:
            return 0
        return len(entry.transcript.messages) // 2

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["TestTranscriptStore"]
