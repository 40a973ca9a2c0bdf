"""Subprocess-to-async-iterator bridge.

codex-stream runtime module v0.1.0

This module provides:
- Launch of a JSONL-emitting process with stdin closed and stdout/stderr
  captured, isolated in its own session/process group
- A lazy ``async for`` over the parsed stdout records
- Classified termination raised after the last event (exit code, signal,
  spawn failure, user cancellation, timeout)
- Reliable termination (SIGTERM -> timeout -> SIGKILL) on cancellation,
  timeout or abandoned iteration, shielded from task cancellation

Key design points:
- One fresh Invocation (queue, framer, monitor) per call; a bridge runs one
  invocation at a time
- Reader, stderr drain and watcher are callbacks feeding the queue; the
  caller pulls at its own pace and the queue never blocks the reader
- The watcher classifies only after stdout and stderr reached EOF, so the
  terminal signal always follows the last record
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
import time
from collections import deque
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .cancel import CancelReason, CancelToken
from .framer import LineFramer
from .lifecycle import LifecycleMonitor
from .queue import EventQueue

__all__ = [
    "Invocation",
    "ProcessSpec",
    "StreamBridge",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

DEFAULT_READ_SIZE = 64 * 1024
STDERR_TAIL_LINES = 5


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None

    @property
    def command(self) -> str:
        return self.argv[0]

    @property
    def args(self) -> list[str]:
        return self.argv[1:]


@dataclass
class Invocation:
    """Per-call execution state.

    Every call to ``StreamBridge.stream()`` builds a new Invocation, so no
    queue, framer, monitor or process is ever shared between calls.

    Attributes:
        spec: What is being run
        queue: Records waiting for the consumer
        framer: stdout framer
        monitor: Lifecycle monitor driving the queue's termination
        cancel: Caller's cancellation handle
        timeout: Wall-clock limit in seconds
        process: The child process once spawned
        timed_out: The timeout fired
        stderr_tail: Last lines of stderr
    """

    spec: ProcessSpec
    queue: EventQueue[Any]
    framer: LineFramer
    monitor: LifecycleMonitor
    cancel: CancelToken | None = None
    timeout: float | None = None
    process: asyncio.subprocess.Process | None = None
    timed_out: bool = False
    started_at: float = field(default_factory=time.monotonic)
    stderr_tail: deque[str] = field(default_factory=lambda: deque(maxlen=STDERR_TAIL_LINES))
    tasks: list[asyncio.Task[Any]] = field(default_factory=list)
    terminate_task: asyncio.Task[None] | None = None
    timer: asyncio.TimerHandle | None = None
    cancel_callback: Callable[[], None] | None = None

    def cancel_reason(self) -> CancelReason:
        """Cancellation state right now; user cancellation wins over timeout."""
        if self.cancel is not None and self.cancel.cancelled:
            return CancelReason.USER
        if self.timed_out:
            return CancelReason.TIMEOUT
        return CancelReason.NONE

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None


@dataclass
class StreamBridge:
    """Runs one JSONL-emitting process and exposes its events as an async iterator.

    Attributes:
        term_timeout: Seconds to wait after SIGTERM before SIGKILL
        kill_timeout: Seconds to wait after SIGKILL
        event_factory: Applied to each parsed record; a ``ValueError``
            (including pydantic's ``ValidationError``) drops the record
        on_stderr: Called with each stderr line; stderr is advisory only
        program: Name used in error messages (default: basename of argv[0])
        read_size: Maximum bytes per stdout read

    Example:
        bridge = StreamBridge()
        spec = ProcessSpec(argv=["codex", "exec", "hello", "--json"])

        async for event in bridge.stream(spec):
            print(event["msg"]["type"])
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    event_factory: Callable[[dict[str, Any]], Any] | None = None
    on_stderr: Callable[[str], None] | None = None
    program: str | None = None
    read_size: int = DEFAULT_READ_SIZE
    _active: Invocation | None = field(default=None, init=False, repr=False)

    @property
    def active(self) -> Invocation | None:
        """The invocation currently running, if any."""
        return self._active

    async def stream(
        self,
        spec: ProcessSpec | Sequence[str],
        *,
        cancel: CancelToken | None = None,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[Any]:
        """Run the process and yield its events.

        Args:
            spec: Process to launch, or an argv list
            cancel: Optional cancellation handle
            cwd: Working directory when ``spec`` is an argv list
            env: Environment when ``spec`` is an argv list
            timeout: Optional wall-clock limit in seconds

        Yields:
            Parsed stdout records (or ``event_factory`` results) in order

        Raises:
            ProcessExitError: Non-zero exit, after all events
            ProcessSignalError: Killed by an unrequested signal
            SpawnError: The process could not be started; nothing is yielded
            UserCancelledError: ``cancel`` was triggered
            CodexTimeoutError: ``timeout`` elapsed
            RuntimeError: The bridge is already running an invocation
        """
        if not isinstance(spec, ProcessSpec):
            spec = ProcessSpec(
                argv=list(spec),
                cwd=Path(cwd) if cwd is not None else None,
                env=env,
            )
        if not spec.argv:
            raise ValueError("argv must not be empty")
        if self._active is not None:
            raise RuntimeError(
                f"StreamBridge is already running pid={self._active.pid}; "
                f"use one bridge per concurrent invocation"
            )

        inv = self._new_invocation(spec, cancel, timeout)
        self._active = inv
        try:
            await self._start(inv)

            async for event in inv.queue:
                yield event

            # The queue ended cleanly; the outcome is normally a success, but
            # a failure that lost the race with the end marker still surfaces.
            outcome = await inv.monitor.wait()
            error = outcome.to_error()
            if error is not None:
                raise error

            logger.debug(
                f"Invocation completed pid={inv.pid} "
                f"duration={time.monotonic() - inv.started_at:.3f}s"
            )
        finally:
            await self._safe_cleanup(inv)
            self._active = None

    def _new_invocation(
        self,
        spec: ProcessSpec,
        cancel: CancelToken | None,
        timeout: float | None,
    ) -> Invocation:
        queue: EventQueue[Any] = EventQueue()
        framer = LineFramer()
        program = self.program or Path(spec.command).name
        holder: list[Invocation] = []

        monitor = LifecycleMonitor(
            queue,
            framer,
            reason=lambda: holder[0].cancel_reason(),
            emit=lambda record: self._emit(holder[0], record),
            stderr=lambda: "\n".join(holder[0].stderr_tail),
            program=program,
            timeout_sec=timeout,
        )
        inv = Invocation(
            spec=spec,
            queue=queue,
            framer=framer,
            monitor=monitor,
            cancel=cancel,
            timeout=timeout,
        )
        holder.append(inv)
        return inv

    async def _start(self, inv: Invocation) -> None:
        """Spawn the process and attach reader, stderr drain and watcher."""
        spec = inv.spec

        if inv.cancel is not None and inv.cancel.cancelled:
            logger.info(f"Cancelled before start: {spec.command}")
            inv.monitor.on_aborted_before_start()
            return

        kwargs = self._build_subprocess_kwargs(spec)
        try:
            # stdin=DEVNULL rather than None: None would inherit the parent's
            # stdin, which may be a protocol channel the child must not touch
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=spec.cwd,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            inv.monitor.on_spawn_error(e)
            return

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.command} cwd={spec.cwd}"
        )

        inv.process = process
        stdout_task = asyncio.create_task(self._read_stdout(inv, process))
        stderr_task = asyncio.create_task(self._drain_stderr(inv, process))
        watcher = asyncio.create_task(self._watch(inv, process, stdout_task, stderr_task))
        inv.tasks.extend([stdout_task, stderr_task, watcher])

        if inv.cancel is not None:
            inv.cancel_callback = lambda: self._request_termination(inv)
            # Runs immediately if cancel() happened while spawning
            inv.cancel.add_callback(inv.cancel_callback)

        if inv.timeout is not None:
            inv.timer = asyncio.get_running_loop().call_later(
                inv.timeout, self._on_timeout, inv
            )

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process to launch

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        # Environment
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        # Platform-specific isolation
        if IS_WINDOWS:
            # Windows: CREATE_NEW_PROCESS_GROUP
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    def _emit(self, inv: Invocation, record: dict[str, Any]) -> None:
        """Push one parsed record, through ``event_factory`` if set."""
        if self.event_factory is None:
            inv.queue.push(record)
            return
        try:
            event = self.event_factory(record)
        except ValueError as e:
            logger.debug(f"Dropping record rejected by event_factory: {e}")
            return
        inv.queue.push(event)

    async def _read_stdout(
        self, inv: Invocation, process: asyncio.subprocess.Process
    ) -> None:
        """Feed stdout chunks through the framer into the queue until EOF."""
        stdout = process.stdout
        if stdout is None:
            return

        while True:
            chunk = await stdout.read(self.read_size)
            if not chunk:
                break
            for record in inv.framer.feed_records(chunk):
                self._emit(inv, record)

    async def _drain_stderr(
        self, inv: Invocation, process: asyncio.subprocess.Process
    ) -> None:
        """Drain stderr to prevent pipe deadlock; lines are advisory only."""
        stderr = process.stderr
        if stderr is None:
            return

        framer = LineFramer()
        while True:
            chunk = await stderr.read(4096)
            lines = framer.feed(chunk) if chunk else framer.close()
            for line in lines:
                line = line.rstrip()
                if not line:
                    continue
                inv.stderr_tail.append(line)
                logger.debug(f"stderr: {line[:500]}")
                if self.on_stderr:
                    try:
                        self.on_stderr(line)
                    except Exception as e:
                        # Keep draining, a stalled stderr pipe would block the child
                        logger.warning(f"Error in on_stderr callback: {e}")
            if not chunk:
                break

    async def _watch(
        self,
        inv: Invocation,
        process: asyncio.subprocess.Process,
        stdout_task: asyncio.Task[None],
        stderr_task: asyncio.Task[None],
    ) -> None:
        """Wait for both streams to close and the process to exit, then classify.

        Any failure, including one raised while classifying, terminates the
        monitor so the consumer never waits on a queue that cannot end.
        """
        try:
            await stdout_task
            await stderr_task
            returncode = await process.wait()
            logger.debug(f"Subprocess completed pid={process.pid} returncode={returncode}")
            inv.monitor.on_exit(returncode)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Stream failure pid={process.pid}: {e!r}")
            inv.monitor.fail(e)

    def _on_timeout(self, inv: Invocation) -> None:
        inv.timer = None
        if inv.monitor.done:
            return
        logger.warning(f"Timeout after {inv.timeout}s, terminating pid={inv.pid}")
        inv.timed_out = True
        self._request_termination(inv)

    def _request_termination(self, inv: Invocation) -> None:
        """Start terminating the process group without waiting for it."""
        process = inv.process
        if process is None or process.returncode is not None:
            return
        if inv.terminate_task is None:
            logger.info(f"Terminating subprocess pid={process.pid}")
            inv.terminate_task = asyncio.get_running_loop().create_task(
                self._terminate_process(process)
            )

    async def _safe_cleanup(self, inv: Invocation) -> None:
        """Safely cleanup subprocess and tasks, shielded from cancellation.

        Args:
            inv: The invocation to tear down
        """
        task = asyncio.ensure_future(self._do_cleanup(inv))
        try:
            # Shield entire cleanup from cancellation
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # Let the cleanup finish before propagating the cancellation
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                logger.debug(f"Double cancel during cleanup pid={inv.pid}")
            raise

    async def _do_cleanup(self, inv: Invocation) -> None:
        """Perform actual cleanup.

        Args:
            inv: The invocation to tear down
        """
        if inv.timer is not None:
            inv.timer.cancel()
            inv.timer = None

        if inv.cancel is not None and inv.cancel_callback is not None:
            inv.cancel.remove_callback(inv.cancel_callback)

        # Terminate subprocess if still running (abandoned iteration)
        process = inv.process
        if process is not None and process.returncode is None:
            await self._terminate_process(process)

        if inv.terminate_task is not None:
            await inv.terminate_task

        # Cancel reader tasks if still running
        for task in inv.tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if not inv.monitor.done:
            logger.debug(f"Invocation abandoned before termination pid={inv.pid}")

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit

        Args:
            process: The subprocess to terminate
        """
        pid = process.pid
        if process.returncode is not None:
            return
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            # Step 1: Graceful termination
            if IS_WINDOWS:
                await self._windows_terminate(process)
            else:
                await self._posix_terminate(process)

            # Step 2: Wait for graceful exit
            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            # Step 3: Force kill
            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                await self._windows_kill(process)
            else:
                await self._posix_kill(process)

            # Step 4: Wait for forced exit
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            # Process already exited
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    async def _posix_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send SIGTERM to the process group on POSIX systems."""
        try:
            # Process group ID equals pid because of start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGTERM)
            logger.debug(f"Sent SIGTERM to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to terminate: {e}")
            process.terminate()

    async def _posix_kill(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send SIGKILL to the process group on POSIX systems."""
        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            process.kill()

    async def _windows_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send CTRL_BREAK_EVENT on Windows."""
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()

    async def _windows_kill(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Force kill on Windows."""
        try:
            process.kill()
            logger.debug(f"Called kill() on pid={process.pid}")
        except ProcessLookupError:
            pass

