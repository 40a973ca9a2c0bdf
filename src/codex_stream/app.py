"""codex-stream command line entry point.

Runs one codex invocation and prints every event as a JSON line on stdout,
or a single JSON summary with ``--summary``. Ctrl+C cancels the run and
terminates the codex process group.

Exit codes:
    0: success
    N: codex exited with code N
    1: any other failure
    124: timeout
    127: codex could not be started
    130: cancelled
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from contextlib import aclosing
from typing import IO, Any

import anyio

from . import __version__
from .collector import ResultCollector
from .config import Config, get_config
from .errors import (
    CodexError,
    CodexTimeoutError,
    ProcessExitError,
    SpawnError,
    UserCancelledError,
)
from .options import CodexOptions, SandboxMode
from .runtime import CancelToken
from .sdk import run

__all__ = ["main", "parse_args", "run_cli", "exit_code_for"]

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_TIMEOUT = 124
EXIT_SPAWN_FAILED = 127
EXIT_CANCELLED = 130  # 128 + SIGINT(2)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="codex-stream",
        description="Run codex exec and stream its JSON events",
    )
    parser.add_argument("prompt", help="Task instruction for codex")
    parser.add_argument("--model", default="", help="Model the agent should use")
    parser.add_argument(
        "--sandbox",
        choices=[mode.value for mode in SandboxMode],
        default=None,
        help="Sandbox policy for shell commands",
    )
    parser.add_argument("--cd", default=None, help="Working root for the agent")
    parser.add_argument(
        "--image",
        action="append",
        default=[],
        help="Image to attach to the prompt (repeatable)",
    )
    parser.add_argument("--profile", default="", help="Profile from config.toml")
    parser.add_argument("--config", default="", help="Override a config value (key=value)")
    parser.add_argument("--full-auto", action="store_true", help="Sandboxed automatic execution")
    parser.add_argument(
        "--skip-git-repo-check",
        action="store_true",
        help="Allow running outside a Git repository",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Wall-clock limit in seconds")
    parser.add_argument("--codex-path", default=None, help="codex executable to run")
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print one JSON summary instead of every event",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def options_from_args(args: argparse.Namespace) -> CodexOptions:
    return CodexOptions(
        config=args.config,
        image=list(args.image),
        model=args.model,
        sandbox=args.sandbox,
        profile=args.profile,
        full_auto=args.full_auto,
        cd=args.cd,
        skip_git_repo_check=args.skip_git_repo_check,
    )


def exit_code_for(exc: BaseException) -> int:
    """Map a classified termination to the process exit code."""
    if isinstance(exc, ProcessExitError):
        return exc.code if 0 < exc.code < 256 else EXIT_FAILURE
    if isinstance(exc, UserCancelledError):
        return EXIT_CANCELLED
    if isinstance(exc, CodexTimeoutError):
        return EXIT_TIMEOUT
    if isinstance(exc, SpawnError):
        return EXIT_SPAWN_FAILED
    return EXIT_FAILURE


def _write_json(out: IO[str], data: Any) -> None:
    out.write(json.dumps(data, ensure_ascii=False) + "\n")
    out.flush()


async def _cancel_on_sigint(token: CancelToken) -> None:
    """Turn SIGINT into a cancellation of the running invocation."""
    with anyio.open_signal_receiver(signal.SIGINT) as signals:
        async for signum in signals:
            logger.info(f"Received {signal.Signals(signum).name}, cancelling codex")
            token.cancel()


async def _execute(
    args: argparse.Namespace,
    token: CancelToken,
    out: IO[str],
    err: IO[str],
) -> int:
    collector = ResultCollector()
    exit_code = 0
    try:
        async with aclosing(run(
            args.prompt,
            options=options_from_args(args),
            cancel=token,
            codex_path=args.codex_path,
            timeout=args.timeout,
        )) as events:
            async for event in events:
                collector.process_event(event)
                if not args.summary:
                    _write_json(out, event)
    except ValueError as e:
        err.write(f"codex-stream: {e}\n")
        return EXIT_FAILURE
    except CodexError as e:
        collector.set_error(e)
        exit_code = exit_code_for(e)
        if not args.summary:
            err.write(f"codex-stream: {e}\n")

    if args.summary:
        _write_json(out, collector.get_result().to_dict())
    return exit_code


async def run_cli(
    args: argparse.Namespace,
    out: IO[str] | None = None,
    err: IO[str] | None = None,
    token: CancelToken | None = None,
) -> int:
    """Run one invocation for parsed arguments and return the exit code."""
    out = out or sys.stdout
    err = err or sys.stderr
    token = token or CancelToken()

    async with anyio.create_task_group() as tg:
        if sys.platform != "win32":
            tg.start_soon(_cancel_on_sigint, token)
        try:
            return await _execute(args, token, out, err)
        finally:
            tg.cancel_scope.cancel()


def configure_logging(config: Config) -> None:
    """Set up handlers: a temp log file in LOG_DEBUG mode, stderr otherwise."""
    log_handlers: list[logging.Handler] = []
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if config.debug else logging.INFO

    # Third-party libraries stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    logging.getLogger("codex_stream").setLevel(log_level)


def main(argv: list[str] | None = None) -> None:
    """Console script entry point."""
    config = get_config()
    configure_logging(config)
    args = parse_args(argv)
    logger.debug(f"Starting codex-stream: {config}")

    sys.exit(anyio.run(run_cli, args))


if __name__ == "__main__":
    main()
