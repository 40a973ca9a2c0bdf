"""Top-level API: run codex and iterate its events.

Example:
    async for event in run("add a unit test for utils.py"):
        print(event["msg"]["type"])

    summary = await collect("summarize the README", options=CodexOptions(model="o3"))
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import aclosing
from pathlib import Path
from typing import Any

from .binary import ensure_executable, resolve_codex_binary
from .collector import ResultCollector, RunSummary
from .config import get_config
from .errors import CodexError
from .events import CodexEvent, parse_event
from .options import CodexOptions, build_args
from .runtime import CancelToken, ProcessSpec, StreamBridge

__all__ = ["build_command", "run", "run_events", "collect"]

logger = logging.getLogger(__name__)


def build_command(
    prompt: str,
    options: CodexOptions | None = None,
    codex_path: str | Path | None = None,
) -> list[str]:
    """Resolve the binary and build the full argv.

    Raises:
        ValueError: Empty prompt or invalid options
        BinaryNotExecutableError: A bundled binary cannot be made executable
    """
    if options is not None:
        options.validate()
    args = build_args(prompt, options)

    binary = resolve_codex_binary(codex_path)
    if Path(binary).is_file():
        ensure_executable(binary)
    return [binary, *args]


def _make_bridge(
    event_factory: Callable[[dict[str, Any]], Any] | None = None,
    on_stderr: Callable[[str], None] | None = None,
) -> StreamBridge:
    config = get_config()
    return StreamBridge(
        term_timeout=config.term_timeout,
        kill_timeout=config.kill_timeout,
        event_factory=event_factory,
        on_stderr=on_stderr,
        program="codex",
    )


async def _stream(
    prompt: str,
    event_factory: Callable[[dict[str, Any]], Any] | None,
    *,
    options: CodexOptions | None,
    cancel: CancelToken | None,
    codex_path: str | Path | None,
    timeout: float | None,
    cwd: str | Path | None,
    env: Mapping[str, str] | None,
    on_stderr: Callable[[str], None] | None,
) -> AsyncIterator[Any]:
    argv = build_command(prompt, options, codex_path)
    spec = ProcessSpec(
        argv=argv,
        cwd=Path(cwd) if cwd is not None else None,
        env=env,
    )
    logger.debug(f"Running {argv[0]} with {len(argv) - 1} args")

    bridge = _make_bridge(event_factory, on_stderr)
    async with aclosing(bridge.stream(spec, cancel=cancel, timeout=timeout)) as stream:
        async for event in stream:
            yield event


async def run(
    prompt: str,
    *,
    options: CodexOptions | None = None,
    cancel: CancelToken | None = None,
    codex_path: str | Path | None = None,
    timeout: float | None = None,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    on_stderr: Callable[[str], None] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """Run ``codex exec`` and yield each stdout record as a dict.

    Args:
        prompt: Task instruction
        options: Launch options
        cancel: Cancellation handle
        codex_path: Explicit codex executable
        timeout: Wall-clock limit in seconds
        cwd: Working directory of the child process
        env: Environment of the child process (default: inherited)
        on_stderr: Called with each stderr line

    Raises:
        ValueError: Empty prompt or invalid options
        CodexError: Classified termination, after all events
    """
    async with aclosing(_stream(
        prompt,
        None,
        options=options,
        cancel=cancel,
        codex_path=codex_path,
        timeout=timeout,
        cwd=cwd,
        env=env,
        on_stderr=on_stderr,
    )) as stream:
        async for event in stream:
            yield event


async def run_events(
    prompt: str,
    *,
    options: CodexOptions | None = None,
    cancel: CancelToken | None = None,
    codex_path: str | Path | None = None,
    timeout: float | None = None,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    on_stderr: Callable[[str], None] | None = None,
) -> AsyncIterator[CodexEvent]:
    """Like ``run`` but yields validated ``CodexEvent`` models.

    Records that are not ``{id, msg: {type}}`` envelopes are dropped.
    """
    async with aclosing(_stream(
        prompt,
        parse_event,
        options=options,
        cancel=cancel,
        codex_path=codex_path,
        timeout=timeout,
        cwd=cwd,
        env=env,
        on_stderr=on_stderr,
    )) as stream:
        async for event in stream:
            yield event


async def collect(
    prompt: str,
    *,
    options: CodexOptions | None = None,
    cancel: CancelToken | None = None,
    codex_path: str | Path | None = None,
    timeout: float | None = None,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    on_event: Callable[[CodexEvent], None] | None = None,
) -> RunSummary:
    """Drain a run into a RunSummary.

    Classified terminations are recorded in the summary instead of raised.
    Invalid arguments still raise ``ValueError``.
    """
    collector = ResultCollector()
    try:
        async with aclosing(run_events(
            prompt,
            options=options,
            cancel=cancel,
            codex_path=codex_path,
            timeout=timeout,
            cwd=cwd,
            env=env,
        )) as events:
            async for event in events:
                collector.process_event(event)
                if on_event is not None:
                    on_event(event)
    except CodexError as e:
        logger.debug(f"Run ended with {type(e).__name__}: {e}")
        collector.set_error(e)
    return collector.get_result()
