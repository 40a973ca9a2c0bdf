#!/usr/bin/env python3
"""Fake codex for integration testing.

Simulates ``codex exec PROMPT --json`` writing one event envelope per line.
Scenario flags come first; anything it does not know (the real codex
arguments) is ignored, and reported back with ``--echo-args``.

Usage:
    python fake_codex.py [scenario flags] exec PROMPT --json [codex flags]

Scenario flags:
    --message TEXT: agent message to emit (repeatable, default "Done.")
    --silent: emit no events at all
    --malformed: interleave non-JSON and non-object lines
    --no-trailing-newline: write the last event without a newline
    --chunked: split every line across two writes
    --echo-args: emit the received argv as the first event
    --stderr TEXT: write a line to stderr (repeatable)
    --sleep SECONDS: wait before exiting (emits a heartbeat per 0.1s)
    --trap-term: exit with 143 on SIGTERM instead of dying from it
    --ignore-term: ignore SIGTERM (only SIGKILL stops it)
    --spawn-child: start a grandchild process and report its pid
    --signal NAME: kill itself with signal NAME after the events
    --exit-code CODE: exit code (default 0)
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import subprocess
import sys
import time

SESSION_ID = "fake-session-123"


def write_line(text: str, *, newline: bool = True, chunked: bool = False) -> None:
    data = text + ("\n" if newline else "")
    if chunked and len(data) > 1:
        half = len(data) // 2
        sys.stdout.write(data[:half])
        sys.stdout.flush()
        time.sleep(0.01)
        data = data[half:]
    sys.stdout.write(data)
    sys.stdout.flush()


def envelope(event_id: str, msg: dict) -> str:
    return json.dumps({"id": event_id, "msg": msg}, ensure_ascii=False)


def main() -> None:
    parser = argparse.ArgumentParser(description="Fake codex for testing", allow_abbrev=False)
    parser.add_argument("--message", action="append", default=None)
    parser.add_argument("--silent", action="store_true")
    parser.add_argument("--malformed", action="store_true")
    parser.add_argument("--no-trailing-newline", action="store_true")
    parser.add_argument("--chunked", action="store_true")
    parser.add_argument("--echo-args", action="store_true")
    parser.add_argument("--stderr", action="append", default=[])
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--trap-term", action="store_true")
    parser.add_argument("--ignore-term", action="store_true")
    parser.add_argument("--spawn-child", action="store_true")
    parser.add_argument("--signal", default=None)
    parser.add_argument("--exit-code", type=int, default=0)
    args, rest = parser.parse_known_args()

    if args.trap_term:
        def on_term(signum, frame):
            write_line(envelope("term", {"type": "background_event", "message": "terminating"}))
            sys.exit(128 + signum)

        signal.signal(signal.SIGTERM, on_term)
    elif args.ignore_term:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    for text in args.stderr:
        sys.stderr.write(text + "\n")
        sys.stderr.flush()

    lines: list[str] = []
    if args.echo_args:
        lines.append(envelope("args", {"type": "background_event", "message": "argv", "argv": rest}))

    if args.spawn_child:
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        lines.append(envelope("child", {"type": "background_event", "message": "child", "child_pid": child.pid}))

    if not args.silent:
        messages = args.message or ["Done."]
        lines.append(envelope("0", {"type": "session_configured", "session_id": SESSION_ID, "model": "fake-model"}))
        if args.malformed:
            lines.append("this is not json")
            lines.append("[1, 2, 3]")
        lines.append(envelope("1", {"type": "task_started"}))
        for text in messages:
            lines.append(envelope("1", {"type": "agent_message", "message": text}))
        lines.append(envelope("1", {
            "type": "token_count",
            "input_tokens": 10,
            "output_tokens": 20,
            "total_tokens": 30,
        }))
        lines.append(envelope("1", {"type": "task_complete", "last_agent_message": messages[-1]}))

    for index, line in enumerate(lines):
        last = index == len(lines) - 1
        write_line(
            line,
            newline=not (last and args.no_trailing_newline),
            chunked=args.chunked,
        )

    deadline = time.monotonic() + args.sleep
    beat = 0
    while time.monotonic() < deadline:
        beat += 1
        write_line(envelope("hb", {"type": "background_event", "message": f"heartbeat {beat}"}))
        time.sleep(0.1)

    if args.signal:
        os.kill(os.getpid(), getattr(signal, args.signal))
        time.sleep(5)

    sys.exit(args.exit_code)


if __name__ == "__main__":
    main()
