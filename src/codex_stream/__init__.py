"""codex-stream - stream codex exec events into an async iterator.

Environment variables:
    CODEX_STREAM_BIN: codex executable to run
    CODEX_STREAM_BUNDLE_DIR: directory with bundled codex binaries
    CODEX_STREAM_DEBUG: log raw stream lines (default false)

Usage:
    async for event in codex_stream.run("fix the failing test"):
        ...
"""

__version__ = "0.1.0"

from .collector import ResultCollector, RunSummary
from .errors import (
    BinaryNotExecutableError,
    CodexError,
    CodexTimeoutError,
    ProcessExitError,
    ProcessSignalError,
    ProtocolParseError,
    SpawnError,
    UnsupportedPlatformError,
    UserCancelledError,
)
from .events import CodexEvent, EventMsg, EventType, parse_event
from .options import CodexOptions, ColorMode, SandboxMode, build_args
from .runtime import CancelToken, ProcessSpec, StreamBridge
from .sdk import collect, run, run_events

__all__ = [
    "__version__",
    "BinaryNotExecutableError",
    "CancelToken",
    "CodexError",
    "CodexEvent",
    "CodexOptions",
    "CodexTimeoutError",
    "ColorMode",
    "EventMsg",
    "EventType",
    "ProcessExitError",
    "ProcessSignalError",
    "ProcessSpec",
    "ProtocolParseError",
    "ResultCollector",
    "RunSummary",
    "SandboxMode",
    "SpawnError",
    "StreamBridge",
    "UnsupportedPlatformError",
    "UserCancelledError",
    "build_args",
    "collect",
    "parse_event",
    "run",
    "run_events",
]
