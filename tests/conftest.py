"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path (development checkout)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_CODEX_PATH = FIXTURES_DIR / "fake_codex.py"

IS_WINDOWS = sys.platform == "win32"


@pytest.fixture
def fake_codex_path() -> Path:
    """Path to the fake codex script."""
    return FAKE_CODEX_PATH


@pytest.fixture
def fake_argv() -> Callable[..., list[str]]:
    """Build an argv running the fake codex with scenario flags."""

    def build(*scenario: str) -> list[str]:
        return [sys.executable, str(FAKE_CODEX_PATH), *scenario, "exec", "prompt", "--json"]

    return build


@pytest.fixture
def make_fake_codex(tmp_path: Path) -> Callable[..., Path]:
    """Write an executable wrapper that runs the fake codex with scenario flags.

    The wrapper stands in for the codex binary, so it receives the real
    ``exec PROMPT --json ...`` arguments after the scenario flags.
    """
    if IS_WINDOWS:
        pytest.skip("Shell wrapper requires POSIX")

    counter = {"n": 0}

    def make(*scenario: str) -> Path:
        counter["n"] += 1
        wrapper = tmp_path / f"codex-{counter['n']}"
        quoted = " ".join(f"'{arg}'" for arg in scenario)
        wrapper.write_text(
            "#!/bin/sh\n"
            f"exec '{sys.executable}' '{FAKE_CODEX_PATH}' {quoted} \"$@\"\n",
            encoding="utf-8",
        )
        wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return wrapper

    return make


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Remove codex-stream variables and reload the global config."""
    for name in list(os.environ):
        if name.startswith("CODEX_STREAM_"):
            monkeypatch.delenv(name, raising=False)

    from codex_stream.config import reload_config

    reload_config()
    yield monkeypatch
    monkeypatch.undo()
    reload_config()
