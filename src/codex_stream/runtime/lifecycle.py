"""Classification of how the child process went away.

The monitor owns the transition from a running process to the queue's
terminal signal:

    RUNNING -> EXITED(code) | SIGNALED(signal) | SPAWN_FAILED -> DONE

Classification policy (the same for every signal):
- exit code 0 is success, even if cancellation was requested late
- any signal or non-zero exit after a user cancellation is a cancellation
- any signal or non-zero exit after the timeout fired is a timeout
- otherwise a signal is ``ProcessSignalError`` and a non-zero exit is
  ``ProcessExitError``
- a spawn failure is a cancellation if cancellation was requested,
  ``SpawnError`` otherwise

The cancellation reason is read once, when the termination is observed,
and stored in the outcome.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from ..errors import (
    CodexError,
    CodexTimeoutError,
    ProcessExitError,
    ProcessSignalError,
    SpawnError,
    UserCancelledError,
)
from .cancel import CancelReason
from .framer import LineFramer
from .queue import EventQueue

__all__ = [
    "LifecycleMonitor",
    "LifecycleState",
    "OutcomeKind",
    "TerminationOutcome",
    "classify_exit",
    "classify_spawn_failure",
    "signal_name",
]

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    """States of one child process as seen by the monitor."""

    RUNNING = "running"
    EXITED = "exited"
    SIGNALED = "signaled"
    SPAWN_FAILED = "spawn_failed"
    DONE = "done"


class OutcomeKind(str, Enum):
    """Classified termination."""

    SUCCESS = "success"
    EXIT_ERROR = "exit_error"
    SIGNALED = "signaled"
    SPAWN_FAILED = "spawn_failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class TerminationOutcome:
    """Result of classifying one process termination.

    Attributes:
        kind: Classified outcome
        cancel_reason: Cancellation state observed at classification time
        code: Exit code, or the negative signal number from asyncio
        signal_name: Signal name when the process died from a signal
        cause: Underlying exception for spawn and internal failures
        timeout_sec: Limit that fired, for timeouts
        program: Program name used in error messages
        stderr: Tail of the diagnostic stream, attached to exit errors
    """

    kind: OutcomeKind
    cancel_reason: CancelReason = CancelReason.NONE
    code: int | None = None
    signal_name: str | None = None
    cause: BaseException | None = None
    timeout_sec: float | None = None
    program: str = "codex"
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def to_error(self) -> BaseException | None:
        """Build the exception raised to the consumer, ``None`` on success."""
        if self.kind is OutcomeKind.SUCCESS:
            return None
        if self.kind is OutcomeKind.CANCELLED:
            return UserCancelledError(f"{self.program} was aborted by user")
        if self.kind is OutcomeKind.TIMED_OUT:
            return CodexTimeoutError(self.timeout_sec, program=self.program)
        if self.kind is OutcomeKind.SIGNALED:
            return ProcessSignalError(
                self.signal_name or "unknown", code=self.code, program=self.program
            )
        if self.kind is OutcomeKind.EXIT_ERROR:
            return ProcessExitError(
                self.code if self.code is not None else -1,
                program=self.program,
                stderr=self.stderr,
            )
        if self.kind is OutcomeKind.SPAWN_FAILED:
            cause = self.cause or RuntimeError(f"{self.program} did not start")
            return SpawnError(cause, program=self.program)
        return self.cause or CodexError(f"{self.program} failed")


def signal_name(signum: int) -> str:
    """Return ``SIGTERM`` style names, ``SIG<n>`` for unknown numbers."""
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"


def _cancelled_kind(reason: CancelReason) -> OutcomeKind | None:
    if reason is CancelReason.USER:
        return OutcomeKind.CANCELLED
    if reason is CancelReason.TIMEOUT:
        return OutcomeKind.TIMED_OUT
    return None


def classify_exit(
    returncode: int,
    cancel_reason: CancelReason = CancelReason.NONE,
    *,
    program: str = "codex",
    timeout_sec: float | None = None,
    stderr: str = "",
) -> TerminationOutcome:
    """Classify a process that ran and terminated.

    Args:
        returncode: asyncio return code; negative values mean death by signal
        cancel_reason: Cancellation state at the moment of termination
        program: Program name for messages
        timeout_sec: Timeout that was armed, if any
        stderr: Tail of the diagnostic stream

    Returns:
        The termination outcome
    """
    if returncode == 0:
        return TerminationOutcome(
            OutcomeKind.SUCCESS, cancel_reason=cancel_reason, code=0, program=program
        )

    name = signal_name(-returncode) if returncode < 0 else None
    kind = _cancelled_kind(cancel_reason)
    if kind is None:
        kind = OutcomeKind.SIGNALED if name else OutcomeKind.EXIT_ERROR

    return TerminationOutcome(
        kind,
        cancel_reason=cancel_reason,
        code=returncode,
        signal_name=name,
        timeout_sec=timeout_sec,
        program=program,
        stderr=stderr,
    )


def classify_spawn_failure(
    cause: BaseException,
    cancel_reason: CancelReason = CancelReason.NONE,
    *,
    program: str = "codex",
    timeout_sec: float | None = None,
) -> TerminationOutcome:
    """Classify a process that never started."""
    kind = _cancelled_kind(cancel_reason) or OutcomeKind.SPAWN_FAILED
    return TerminationOutcome(
        kind,
        cancel_reason=cancel_reason,
        cause=cause,
        timeout_sec=timeout_sec,
        program=program,
    )


class LifecycleMonitor:
    """Observes one child process and terminates the event queue exactly once.

    Before the terminal signal the monitor flushes the framer, so every
    record in a trailing unterminated line reaches the consumer ahead of
    the end of the stream.

    Args:
        queue: Event queue of this invocation
        framer: stdout framer of this invocation
        reason: Returns the current cancellation reason
        emit: Delivers a flushed record (defaults to ``queue.push``)
        stderr: Returns the tail of the diagnostic stream
        program: Program name for messages
        timeout_sec: Timeout that was armed, if any
    """

    def __init__(
        self,
        queue: EventQueue[Any],
        framer: LineFramer,
        reason: Callable[[], CancelReason],
        *,
        emit: Callable[[dict[str, Any]], None] | None = None,
        stderr: Callable[[], str] | None = None,
        program: str = "codex",
        timeout_sec: float | None = None,
    ) -> None:
        self._queue = queue
        self._framer = framer
        self._reason = reason
        self._emit = emit or queue.push
        self._stderr = stderr
        self._program = program
        self._timeout_sec = timeout_sec

        self._state = LifecycleState.RUNNING
        self._outcome: TerminationOutcome | None = None
        self._done = asyncio.Event()

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def outcome(self) -> TerminationOutcome | None:
        return self._outcome

    @property
    def done(self) -> bool:
        return self._state is LifecycleState.DONE

    def on_exit(self, returncode: int) -> TerminationOutcome | None:
        """The operating system reported that the process terminated."""
        if self._state is not LifecycleState.RUNNING:
            logger.debug(f"Ignoring exit {returncode} in state {self._state.value}")
            return self._outcome

        self._state = LifecycleState.SIGNALED if returncode < 0 else LifecycleState.EXITED
        outcome = classify_exit(
            returncode,
            self._reason(),
            program=self._program,
            timeout_sec=self._timeout_sec,
            stderr=self._stderr() if self._stderr else "",
        )
        self._finish(outcome)
        return outcome

    def on_spawn_error(self, exc: BaseException) -> TerminationOutcome | None:
        """The process could not be started."""
        if self._state is not LifecycleState.RUNNING:
            logger.debug(f"Ignoring spawn error in state {self._state.value}: {exc!r}")
            return self._outcome

        self._state = LifecycleState.SPAWN_FAILED
        outcome = classify_spawn_failure(
            exc,
            self._reason(),
            program=self._program,
            timeout_sec=self._timeout_sec,
        )
        logger.debug(f"failed to run {self._program}: {exc}")
        self._finish(outcome)
        return outcome

    def on_aborted_before_start(self) -> TerminationOutcome | None:
        """Cancellation fired before the process was spawned."""
        return self.on_spawn_error(RuntimeError(f"{self._program} was aborted before start"))

    def fail(self, exc: BaseException) -> None:
        """Terminate with an unexpected internal error, delivered as is."""
        if self._state is LifecycleState.DONE:
            logger.debug(f"Ignoring internal error after termination: {exc!r}")
            return
        self._finish(
            TerminationOutcome(
                OutcomeKind.INTERNAL_ERROR,
                cancel_reason=self._reason(),
                cause=exc,
                program=self._program,
            )
        )

    async def wait(self) -> TerminationOutcome:
        """Wait until the lifecycle reaches DONE and return the outcome."""
        await self._done.wait()
        if self._outcome is None:
            raise RuntimeError(f"{self._program} lifecycle finished without an outcome")
        return self._outcome

    def _finish(self, outcome: TerminationOutcome) -> None:
        if self._state is LifecycleState.DONE:
            return

        # Trailing records must reach the consumer before the terminal signal
        try:
            for record in self._framer.close_records():
                self._emit(record)
        except Exception as e:
            logger.warning(f"Failed to deliver trailing record from {self._program}: {e!r}")
            outcome = TerminationOutcome(
                OutcomeKind.INTERNAL_ERROR,
                cancel_reason=outcome.cancel_reason,
                code=outcome.code,
                cause=e,
                program=self._program,
            )

        try:
            error = outcome.to_error()
            if error is not None:
                logger.debug(f"{self._program} finished: {outcome.kind.value} ({error})")
                self._queue.error(error)
            else:
                logger.debug(f"{self._program} exited with code {outcome.code}")
        finally:
            self._queue.end()
            self._outcome = outcome
            self._state = LifecycleState.DONE
            self._done.set()
