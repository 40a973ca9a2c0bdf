"""Exception types raised by codex-stream.

codex-stream errors v0.1.0

Termination failures are raised from the consumer's ``async for`` after every
event produced before them has been yielded, and at most one is raised per
invocation. ``ProtocolParseError`` is internal: malformed lines are dropped
and never reach the caller.
"""

from __future__ import annotations

__all__ = [
    "CodexError",
    "ProtocolParseError",
    "ProcessExitError",
    "ProcessSignalError",
    "SpawnError",
    "UserCancelledError",
    "CodexTimeoutError",
    "UnsupportedPlatformError",
    "BinaryNotExecutableError",
]


class CodexError(Exception):
    """Base class for codex-stream errors."""
    pass


class ProtocolParseError(CodexError):
    """A stdout line could not be parsed as a JSON object.

    Attributes:
        line: The offending line (truncated in the message)
    """

    def __init__(self, line: str, reason: str = "") -> None:
        self.line = line
        self.reason = reason
        preview = line if len(line) <= 100 else line[:100] + "..."
        message = f"unparseable line: {preview!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ProcessExitError(CodexError):
    """The process ran and exited with a non-zero code.

    Attributes:
        code: Exit code reported by the operating system
        stderr: Last lines of the diagnostic stream, if any
    """

    def __init__(self, code: int, program: str = "codex", stderr: str = "") -> None:
        self.code = code
        self.program = program
        self.stderr = stderr
        message = f"{program} exited with code {code}"
        if stderr:
            message += f":\n{stderr}"
        super().__init__(message)


class ProcessSignalError(CodexError):
    """The process was killed by a signal nobody asked for.

    Attributes:
        signal_name: Name of the signal, e.g. ``SIGSEGV``
        code: Raw asyncio return code (negative signal number)
    """

    def __init__(self, signal_name: str, code: int | None = None, program: str = "codex") -> None:
        self.signal_name = signal_name
        self.code = code
        self.program = program
        super().__init__(f"{program} was terminated with signal {signal_name}")


class SpawnError(CodexError):
    """The process could not be started at all.

    Attributes:
        cause: Underlying platform error (also chained as ``__cause__``)
    """

    def __init__(self, cause: BaseException, program: str = "codex") -> None:
        self.cause = cause
        self.program = program
        super().__init__(f"failed to run {program}: {cause}")
        self.__cause__ = cause


class UserCancelledError(CodexError):
    """The caller cancelled the invocation and the process went away because of it."""

    def __init__(self, message: str = "codex was aborted by user") -> None:
        super().__init__(message)


class CodexTimeoutError(CodexError):
    """The invocation ran longer than its timeout and was terminated.

    Attributes:
        timeout_sec: The limit that fired
    """

    def __init__(self, timeout_sec: float | None = None, program: str = "codex") -> None:
        self.timeout_sec = timeout_sec
        self.program = program
        if timeout_sec is None:
            super().__init__(f"{program} timed out")
        else:
            super().__init__(f"{program} timed out after {timeout_sec:g}s")


class UnsupportedPlatformError(CodexError):
    """No bundled binary exists for this OS/architecture pair."""

    def __init__(self, platform: str, machine: str) -> None:
        self.platform = platform
        self.machine = machine
        super().__init__(f"Unsupported platform: {platform} ({machine})")


class BinaryNotExecutableError(CodexError):
    """The resolved binary is not executable and chmod failed."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f'Codex binary not executable: {path}. Try: chmod +x "{path}"')
