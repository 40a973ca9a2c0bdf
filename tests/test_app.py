"""Command line tests."""

from __future__ import annotations

import io
import json
import logging

import pytest

from codex_stream import app
from codex_stream.app import exit_code_for, options_from_args, parse_args, run_cli
from codex_stream.config import Config
from codex_stream.errors import (
    CodexError,
    CodexTimeoutError,
    ProcessExitError,
    ProcessSignalError,
    SpawnError,
    UserCancelledError,
)
from codex_stream.options import SandboxMode
from codex_stream.runtime import CancelToken


# =============================================================================
# Arguments
# =============================================================================


class TestParseArgs:
    def test_prompt_only(self):
        args = parse_args(["fix it"])
        assert args.prompt == "fix it"
        assert args.timeout is None
        assert args.summary is False

    def test_options(self):
        args = parse_args([
            "fix it",
            "--model", "o3",
            "--sandbox", "workspace-write",
            "--image", "a.png",
            "--image", "b.png",
            "--full-auto",
            "--skip-git-repo-check",
            "--timeout", "2.5",
        ])
        options = options_from_args(args)
        assert options.model == "o3"
        assert options.sandbox is SandboxMode.WORKSPACE_WRITE
        assert [p.name for p in options.image] == ["a.png", "b.png"]
        assert options.full_auto
        assert options.skip_git_repo_check
        assert args.timeout == 2.5

    def test_invalid_sandbox(self):
        with pytest.raises(SystemExit):
            parse_args(["x", "--sandbox", "everything"])


@pytest.mark.parametrize(
    "error,code",
    [
        (ProcessExitError(3), 3),
        (ProcessExitError(300), 1),
        (UserCancelledError(), 130),
        (CodexTimeoutError(1), 124),
        (SpawnError(FileNotFoundError("codex")), 127),
        (ProcessSignalError("SIGSEGV", -11), 1),
        (CodexError("other"), 1),
    ],
)
def test_exit_codes(error: BaseException, code: int):
    assert exit_code_for(error) == code


# =============================================================================
# run_cli
# =============================================================================


class TestRunCli:
    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_prints_events(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--message", "hi")
        out, err = io.StringIO(), io.StringIO()
        code = await run_cli(parse_args(["x", "--codex-path", str(codex)]), out, err)

        assert code == 0
        lines = [json.loads(line) for line in out.getvalue().splitlines()]
        assert lines[0]["msg"]["type"] == "session_configured"
        assert len(lines) == 5

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_summary(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--message", "answer")
        out = io.StringIO()
        code = await run_cli(
            parse_args(["x", "--codex-path", str(codex), "--summary"]), out, io.StringIO()
        )

        assert code == 0
        summary = json.loads(out.getvalue())
        assert summary["final_message"] == "answer"
        assert summary["success"] is True

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_exit_code_propagated(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--exit-code", "4")
        err = io.StringIO()
        code = await run_cli(parse_args(["x", "--codex-path", str(codex)]), io.StringIO(), err)

        assert code == 4
        assert "exited with code 4" in err.getvalue()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_spawn_failure(self, clean_env, tmp_path):
        code = await run_cli(
            parse_args(["x", "--codex-path", str(tmp_path / "missing")]),
            io.StringIO(),
            io.StringIO(),
        )
        assert code == 127

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_timeout(self, clean_env, make_fake_codex):
        codex = make_fake_codex("--sleep", "30")
        out = io.StringIO()
        code = await run_cli(
            parse_args(["x", "--codex-path", str(codex), "--timeout", "0.5", "--summary"]),
            out,
            io.StringIO(),
        )
        assert code == 124
        assert json.loads(out.getvalue())["timed_out"] is True

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_cancelled_token(self, clean_env, make_fake_codex):
        token = CancelToken()
        token.cancel()
        code = await run_cli(
            parse_args(["x", "--codex-path", str(make_fake_codex())]),
            io.StringIO(),
            io.StringIO(),
            token=token,
        )
        assert code == 130

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_invalid_options(self, clean_env, tmp_path):
        err = io.StringIO()
        code = await run_cli(
            parse_args(["x", "--codex-path", "codex", "--image", str(tmp_path / "no.png")]),
            io.StringIO(),
            err,
        )
        assert code == 1
        assert "no.png" in err.getvalue()


# =============================================================================
# Logging
# =============================================================================


def test_configure_logging_levels(monkeypatch):
    root = logging.getLogger()
    package_logger = logging.getLogger("codex_stream")
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setattr(package_logger, "level", package_logger.level)

    app.configure_logging(Config(debug=True))
    assert package_logger.level == logging.DEBUG
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1

    root.handlers = []
    app.configure_logging(Config())
    assert package_logger.level == logging.INFO
