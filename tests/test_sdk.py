"""Top-level API tests against the fake codex wrapper."""

from __future__ import annotations

from pathlib import Path

import pytest

from codex_stream.errors import ProcessExitError, SpawnError, UserCancelledError
from codex_stream.events import CodexEvent, EventType
from codex_stream.options import CodexOptions, SandboxMode
from codex_stream.runtime import CancelToken
from codex_stream.sdk import build_command, collect, run, run_events


# =============================================================================
# build_command
# =============================================================================


class TestBuildCommand:
    def test_explicit_binary(self, clean_env):
        argv = build_command("hi", CodexOptions(model="o3"), codex_path="/opt/codex")
        assert argv == ["/opt/codex", "exec", "hi", "--json", "--model", "o3"]

    def test_invalid_options(self, clean_env, tmp_path: Path):
        with pytest.raises(ValueError):
            build_command("hi", CodexOptions(image=[tmp_path / "missing.png"]), codex_path="x")

    def test_makes_bundled_file_executable(self, clean_env, tmp_path: Path):
        target = tmp_path / "codex"
        target.write_text("#!/bin/sh\n")
        target.chmod(0o644)
        build_command("hi", codex_path=target)
        assert target.stat().st_mode & 0o100


# =============================================================================
# run / run_events
# =============================================================================


class TestRun:
    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_run_yields_dicts(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--message", "hello")
        events = [event async for event in run("say hello", codex_path=codex)]

        assert events[0]["msg"]["type"] == "session_configured"
        assert {"id": "1", "msg": {"type": "agent_message", "message": "hello"}} in events

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_codex_receives_built_arguments(self, clean_env, make_fake_codex, tmp_path):
        codex = make_fake_codex("--echo-args", "--silent")
        options = CodexOptions(sandbox=SandboxMode.READ_ONLY, cd=tmp_path, model="o3")
        events = [event async for event in run("do it", options=options, codex_path=codex)]

        assert events[0]["msg"]["argv"] == [
            "exec", "do it", "--json",
            "--cd", str(tmp_path),
            "--sandbox", "read-only",
            "--model", "o3",
        ]

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_codex_bin_from_environment(self, clean_env, make_fake_codex):
        from codex_stream.config import reload_config

        clean_env.setenv("CODEX_STREAM_BIN", str(make_fake_codex("--silent")))
        reload_config()
        assert [event async for event in run("x")] == []

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_run_events_yields_models(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--malformed")
        events = [event async for event in run_events("x", codex_path=codex)]

        assert all(isinstance(event, CodexEvent) for event in events)
        assert events[0].kind is EventType.SESSION_CONFIGURED
        assert events[-1].kind is EventType.TASK_COMPLETE

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_exit_error(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--exit-code", "2")
        with pytest.raises(ProcessExitError) as exc_info:
            async for _ in run("x", codex_path=codex):
                pass
        assert exc_info.value.code == 2

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_missing_binary(self, clean_env, tmp_path: Path):
        with pytest.raises(SpawnError):
            async for _ in run("x", codex_path=tmp_path / "nope"):
                pass

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_cancel(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--sleep", "30")
        token = CancelToken()
        with pytest.raises(UserCancelledError):
            async for _ in run("x", codex_path=codex, cancel=token):
                token.cancel()

    @pytest.mark.asyncio
    async def test_empty_prompt(self, clean_env):
        with pytest.raises(ValueError):
            async for _ in run("", codex_path="codex"):
                pass


# =============================================================================
# collect
# =============================================================================


class TestCollect:
    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_summary(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--message", "step", "--message", "answer")
        seen: list[CodexEvent] = []
        summary = await collect("x", codex_path=codex, on_event=seen.append)

        assert summary.success
        assert summary.session_id == "fake-session-123"
        assert summary.final_message == "answer"
        assert summary.thought_steps == ["step"]
        assert summary.token_usage.total_tokens == 30
        assert summary.event_count == len(seen) == 6

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_failure_recorded_not_raised(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--exit-code", "5", "--stderr", "fatal: boom")
        summary = await collect("x", codex_path=codex)

        assert not summary.success
        assert summary.exit_code == 5
        assert "fatal: boom" in summary.error
        assert summary.final_message == "Done."

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_timeout_recorded(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--sleep", "30")
        summary = await collect("x", codex_path=codex, timeout=0.5)
        assert summary.timed_out
