"""Runtime module for subprocess streaming.

This module bridges a JSONL-emitting child process to an ``async for``
consumer: framing, the event queue, lifecycle classification, cancellation
and process-group termination.
"""

from __future__ import annotations

from .bridge import Invocation, ProcessSpec, StreamBridge
from .cancel import CancelReason, CancelToken
from .framer import LineFramer, parse_record
from .lifecycle import (
    LifecycleMonitor,
    LifecycleState,
    OutcomeKind,
    TerminationOutcome,
    classify_exit,
    classify_spawn_failure,
)
from .queue import EventQueue

__all__ = [
    "CancelReason",
    "CancelToken",
    "EventQueue",
    "Invocation",
    "LifecycleMonitor",
    "LifecycleState",
    "LineFramer",
    "OutcomeKind",
    "ProcessSpec",
    "StreamBridge",
    "TerminationOutcome",
    "classify_exit",
    "classify_spawn_failure",
    "parse_record",
]
