"""Diagnostics breadcrumbs for profile changes, test prompts, and encryption fallbacks.

Recording is best-effort: :func:`record_diagnostics_event` logs recorder
failures and never propagates them.

Updates:
  v0.2.0 - 2025-12-17 - Add JSONL recorder and background dispatch for sync hooks.
  v0.1.0 - 2025-12-15 - Introduce profile and test prompt diagnostics events.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from models.llm_profile import LLMProfile, ProviderType
    from models.test_prompt import TestPromptResult

    from .encryption import EncryptionFallbackEvent

logger = logging.getLogger("llm_vault.diagnostics")

_PENDING_TASKS: set[asyncio.Task[None]] = set()

ProfileEventType = Literal[
    "llm_profile_created",
    "llm_profile_updated",
    "llm_profile_deleted",
    "llm_profile_activated",
]


@dataclass(frozen=True, slots=True)
class ProfileDiagnosticsEvent:
    type: ProfileEventType
    profile_id: str
    profile_name: str
    provider_type: ProviderType
    timestamp: int
    changes: tuple[str, ...] | None = None

    @classmethod
    def for_profile(
        cls,
        event_type: ProfileEventType,
        profile: LLMProfile,
        timestamp: int,
        changes: list[str] | None = None,
    ) -> ProfileDiagnosticsEvent:
        return cls(
            type=event_type,
            profile_id=profile.id,
            profile_name=profile.name,
            provider_type=profile.provider_type,
            timestamp=timestamp,
            changes=tuple(changes) if changes is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "profileId": self.profile_id,
            "profileName": self.profile_name,
            "providerType": self.provider_type,
            "timestamp": self.timestamp,
        }
        if self.changes is not None:
            payload["changes"] = list(self.changes)
        return payload


@dataclass(frozen=True, slots=True)
class TestPromptDiagnosticsEvent:
    __test__ = False

    result: TestPromptResult
    type: Literal["llm_test_prompt"] = field(default="llm_test_prompt")

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "result": self.result.to_dict()}


type DiagnosticsEvent = ProfileDiagnosticsEvent | TestPromptDiagnosticsEvent | EncryptionFallbackEvent


@runtime_checkable
class DiagnosticsEventRecorder(Protocol):
    """Sink for diagnostics events; may be synchronous or return an awaitable."""

    def record(self, event: DiagnosticsEvent) -> None | Awaitable[None]: ...


async def record_diagnostics_event(
    recorder: DiagnosticsEventRecorder | None,
    event: DiagnosticsEvent,
) -> None:
    """Forward *event* to *recorder*, logging and swallowing any failure."""
    if recorder is None:
        return
    try:
        outcome = recorder.record(event)
    except Exception:  # noqa: BLE001 - diagnostics must not fail user operations
        logger.warning(
            "Failed to record diagnostics event",
            extra={"event_type": event.type},
            exc_info=True,
        )
        return
    if inspect.isawaitable(outcome):
        await _await_quietly(outcome, event.type)


def dispatch_diagnostics_event(
    recorder: DiagnosticsEventRecorder | None,
    event: DiagnosticsEvent,
) -> None:
    """Record *event* from synchronous code such as encryption fallback hooks.

    Awaitable recorders are scheduled on the running loop; without one the
    awaitable is discarded and the drop is logged.
    """
    if recorder is None:
        return
    try:
        outcome = recorder.record(event)
    except Exception:  # noqa: BLE001 - diagnostics must not fail user operations
        logger.warning(
            "Failed to record diagnostics event",
            extra={"event_type": event.type},
            exc_info=True,
        )
        return
    if not inspect.isawaitable(outcome):
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(outcome):
            outcome.close()
        logger.debug("Dropped async diagnostics event outside an event loop")
        return
    task = loop.create_task(_await_quietly(outcome, event.type))
    _PENDING_TASKS.add(task)
    task.add_done_callback(_PENDING_TASKS.discard)


async def _await_quietly(pending: Awaitable[None], event_type: str) -> None:
    try:
        await pending
    except Exception:  # noqa: BLE001 - diagnostics must not fail user operations
        logger.warning(
            "Failed to record diagnostics event",
            extra={"event_type": event_type},
            exc_info=True,
        )


class JsonlDiagnosticsRecorder:
    """Append diagnostics events to a JSON Lines file."""

    def __init__(self, path: Path | str | None = None, *, enabled: bool = True) -> None:
        self._enabled = enabled
        default_path = Path("data") / "logs" / "llm_diagnostics.jsonl"
        self._path = Path(path) if path is not None else default_path

    @property
    def log_path(self) -> Path:
        return self._path

    def record(self, event: DiagnosticsEvent) -> None:
        if not self._enabled:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(event.to_dict(), ensure_ascii=False))
                handle.write("\n")
        except OSError:
            logger.debug(
                "Unable to write diagnostics event",
                extra={"event_type": event.type},
                exc_info=True,
            )

    def read_events(self) -> list[dict[str, Any]]:
        """Return every recorded event, skipping lines that are not valid JSON."""
        if not self._path.exists():
            return []
        events: list[dict[str, Any]] = []
        for line in self._path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                events.append(parsed)
        return events


__all__ = [
    "DiagnosticsEvent",
    "DiagnosticsEventRecorder",
    "JsonlDiagnosticsRecorder",
    "ProfileDiagnosticsEvent",
    "TestPromptDiagnosticsEvent",
    "dispatch_diagnostics_event",
    "record_diagnostics_event",
]
