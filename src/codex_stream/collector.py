"""Result collection over a codex event stream.

Responsibilities:
- Extract the session id from ``session_configured``
- Collect agent messages (intermediate steps vs. final answer)
- Keep token usage and event counts
- Record how the run ended (error message, exit code, cancelled)
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any

from .errors import (
    CodexError,
    CodexTimeoutError,
    ProcessExitError,
    UserCancelledError,
)
from .events import CodexEvent, EventType, TokenUsage

__all__ = ["RunSummary", "ResultCollector"]

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What one codex run produced.

    Attributes:
        session_id: Session id reported by codex
        model: Model reported by codex
        final_message: Last complete agent message
        thought_steps: Earlier agent messages
        event_count: Number of events received
        token_usage: Last token accounting reported
        error: Error message if the run failed
        exit_code: Exit code for non-zero exits
        cancelled: The run was cancelled by the user
        timed_out: The run hit its timeout
        duration_sec: Wall-clock duration
    """

    session_id: str = ""
    model: str = ""
    final_message: str = ""
    thought_steps: list[str] = field(default_factory=list)
    event_count: int = 0
    token_usage: TokenUsage | None = None
    error: str | None = None
    exit_code: int | None = None
    cancelled: bool = False
    timed_out: bool = False
    duration_sec: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["token_usage"] = (
            self.token_usage.model_dump() if self.token_usage is not None else None
        )
        data["success"] = self.success
        return data


class ResultCollector:
    """Aggregates events of one run into a RunSummary.

    Accepts raw records or ``CodexEvent`` models. Message handling:
    - a delta appends to the message being built
    - a complete message moves the previous one to ``thought_steps`` and
      becomes the final message

    Example:
        collector = ResultCollector()
        try:
            async for event in run("explain this repo"):
                collector.process_event(event)
        except CodexError as e:
            collector.set_error(e)
        summary = collector.get_result()
    """

    def __init__(self) -> None:
        self._started_at = time.monotonic()
        self._summary = RunSummary()
        self._pending_delta = ""

    def process_event(self, event: CodexEvent | dict[str, Any]) -> None:
        if not isinstance(event, CodexEvent):
            try:
                event = CodexEvent.model_validate(event)
            except ValueError as e:
                logger.debug(f"Not an envelope, counting only: {e}")
                self._summary.event_count += 1
                return

        self._summary.event_count += 1
        kind = event.kind

        if kind is EventType.SESSION_CONFIGURED:
            self._summary.session_id = str(event.msg.get("session_id", "") or "")
            self._summary.model = str(event.msg.get("model", "") or "")
        elif kind is EventType.AGENT_MESSAGE_DELTA:
            self._pending_delta += event.text or ""
        elif kind is EventType.AGENT_MESSAGE:
            self._push_message(event.text or "")
        elif kind is EventType.TOKEN_COUNT:
            self._summary.token_usage = event.token_usage
        elif kind is EventType.ERROR:
            self._summary.error = event.text or "codex reported an error"

    def _push_message(self, text: str) -> None:
        # A complete message supersedes the deltas that built it
        self._pending_delta = ""
        if not text:
            return
        if self._summary.final_message:
            self._summary.thought_steps.append(self._summary.final_message)
        self._summary.final_message = text

    def set_error(self, exc: BaseException) -> None:
        """Record the exception that ended the run."""
        self._summary.error = str(exc)
        if isinstance(exc, ProcessExitError):
            self._summary.exit_code = exc.code
        elif isinstance(exc, UserCancelledError):
            self._summary.cancelled = True
        elif isinstance(exc, CodexTimeoutError):
            self._summary.timed_out = True
        elif not isinstance(exc, CodexError):
            logger.debug(f"Unexpected error type {type(exc).__name__}")

    def get_result(self) -> RunSummary:
        summary = self._summary
        if self._pending_delta:
            self._push_message(self._pending_delta)
        summary.duration_sec = time.monotonic() - self._started_at
        return summary

    @property
    def session_id(self) -> str:
        return self._summary.session_id
