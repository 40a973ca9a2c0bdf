"""Cancellation handle passed into an invocation before it starts."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

__all__ = ["CancelReason", "CancelToken"]

logger = logging.getLogger(__name__)


class CancelReason(str, Enum):
    """Why termination of the child process was requested.

    Captured into the termination outcome when the process goes away, so
    the classification never depends on re-reading shared state later.
    """

    NONE = "none"
    USER = "user"
    TIMEOUT = "timeout"


class CancelToken:
    """Caller-owned cancellation handle.

    Calling ``cancel()`` records the request and runs the registered
    callbacks (the bridge registers one that terminates the process group).
    Cancelling before the invocation starts makes it fail with
    ``UserCancelledError`` without spawning anything.

    Example:
        token = CancelToken()
        async for event in run("fix the tests", cancel=token):
            if looks_wrong(event):
                token.cancel()
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self._cancelled})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> CancelReason:
        return CancelReason.USER if self._cancelled else CancelReason.NONE

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        logger.info("Cancellation requested")
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in cancel callback: {e}")

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)
