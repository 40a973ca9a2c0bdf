"""Single-producer/single-consumer bridge from callbacks to ``async for``.

The producer side (stdout reader, lifecycle monitor) calls ``push``,
``error`` and ``end`` synchronously from the event loop. The consumer pulls
with ``async for``. Every producer call funnels through one
deliver-or-buffer step: a slot is either handed to the waiting consumer
through its future, or appended to the buffer. Because the slot itself says
whether it is an item, a failure or the end, a failure handed to a waiting
consumer is raised by that consumer exactly like a buffered one.

The buffer is unbounded. stdout reads are far slower than JSON parsing,
and a bound would need a drop or back-pressure policy.

No lock is needed: all calls run on one event loop with no preemption
between them.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

__all__ = [
    "EventQueue",
    "SlotKind",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SlotKind(str, Enum):
    """What a queue slot carries."""

    ITEM = "item"
    FAILURE = "failure"
    END = "end"


@dataclass(frozen=True)
class _Slot:
    kind: SlotKind
    value: Any = None
    error: BaseException | None = None

    @property
    def terminal(self) -> bool:
        return self.kind is not SlotKind.ITEM


_END = _Slot(SlotKind.END)


class EventQueue(Generic[T]):
    """Unbounded async queue with in-band error and end signals.

    Invariants:
    - items come out in push order
    - ``error`` and ``end`` are terminal; later pushes are dropped
    - at most one waiter exists, and only while the buffer is empty
    - at most one failure is ever raised
    - once the consumer has seen the end (or the failure) iteration stays
      finished; the queue cannot be restarted

    Example:
        queue: EventQueue[dict] = EventQueue()
        queue.push({"a": 1})
        queue.end()

        async for item in queue:
            handle(item)
    """

    def __init__(self) -> None:
        self._buffer: deque[_Slot] = deque()
        self._waiter: asyncio.Future[_Slot] | None = None
        self._terminal: _Slot | None = None
        self._exhausted = False

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        state = "exhausted" if self._exhausted else "closed" if self.closed else "open"
        return (
            f"EventQueue(state={state}, buffered={len(self._buffer)}, "
            f"waiting={self.has_waiter})"
        )

    @property
    def closed(self) -> bool:
        """A terminal slot has been delivered."""
        return self._terminal is not None

    @property
    def exhausted(self) -> bool:
        """The consumer has observed the terminal slot."""
        return self._exhausted

    @property
    def has_waiter(self) -> bool:
        return self._waiter is not None and not self._waiter.done()

    # =========================================================================
    # Producer side
    # =========================================================================

    def push(self, item: T) -> None:
        """Deliver one event."""
        if self._terminal is not None:
            logger.debug(f"Dropping item pushed after {self._terminal.kind.value}")
            return
        self._deliver(_Slot(SlotKind.ITEM, value=item))

    def error(self, exc: BaseException) -> None:
        """Terminate the stream with a failure raised to the consumer.

        After ``end()``, a failure still replaces the end marker as long as
        the consumer has not dequeued it yet.
        """
        terminal = self._terminal
        if terminal is None:
            self._deliver(_Slot(SlotKind.FAILURE, error=exc))
            return

        if terminal.kind is SlotKind.END and self._buffer and self._buffer[-1] is terminal:
            failure = _Slot(SlotKind.FAILURE, error=exc)
            self._buffer[-1] = failure
            self._terminal = failure
            return

        if terminal.kind is SlotKind.END:
            logger.warning(f"Error raised after the consumer finished, dropping: {exc!r}")
        else:
            logger.debug(f"Dropping second error {exc!r}, already failed with {terminal.error!r}")

    def end(self) -> None:
        """Terminate the stream normally."""
        if self._terminal is not None:
            return
        self._deliver(_END)

    def _deliver(self, slot: _Slot) -> None:
        if slot.terminal:
            self._terminal = slot

        waiter = self._waiter
        if waiter is not None and not waiter.done():
            # Hand-off: the buffer is empty whenever a waiter exists
            self._waiter = None
            waiter.set_result(slot)
            return

        self._waiter = None
        self._buffer.append(slot)

    # =========================================================================
    # Consumer side
    # =========================================================================

    def __aiter__(self) -> EventQueue[T]:
        return self

    async def __anext__(self) -> T:
        if self._exhausted:
            raise StopAsyncIteration

        if self._buffer:
            slot = self._buffer.popleft()
        else:
            if self.has_waiter:
                raise RuntimeError("EventQueue supports a single consumer")
            waiter: asyncio.Future[_Slot] = asyncio.get_running_loop().create_future()
            self._waiter = waiter
            try:
                slot = await waiter
            finally:
                if self._waiter is waiter:
                    self._waiter = None

        return self._unwrap(slot)

    def _unwrap(self, slot: _Slot) -> T:
        if slot.kind is SlotKind.ITEM:
            return slot.value

        self._exhausted = True
        if slot.kind is SlotKind.FAILURE and slot.error is not None:
            raise slot.error
        raise StopAsyncIteration
