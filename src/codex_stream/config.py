"""codex-stream environment configuration.

Environment variables:
    CODEX_STREAM_BIN: codex executable to run
        - unset = bundled binary, then ``codex`` on PATH

    CODEX_STREAM_BUNDLE_DIR: directory holding bundled ``codex-<triple>`` binaries
        - unset = ``bin/`` next to the installed package

    CODEX_STREAM_DEBUG: log raw stdout/stderr lines
        - true/1/yes = on
        - false/0/no = off (default)

    CODEX_STREAM_LOG_DEBUG: log to a temporary file
        - true/1/yes = on (log written under the temp directory)
        - false/0/no = off (default, log to stderr)

    CODEX_STREAM_TERM_TIMEOUT: seconds between SIGTERM and SIGKILL
        - default 2.0, clamped to 0.1-60

    CODEX_STREAM_KILL_TIMEOUT: seconds to wait after SIGKILL
        - default 1.0, clamped to 0.1-60
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(value: str | None, default: float) -> float:
    """Parse a duration in seconds, clamped to 0.1-60."""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(0.1, min(seconds, 60.0))


def _parse_path(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    return value.strip()


@dataclass
class Config:
    """codex-stream configuration.

    Attributes:
        codex_bin: Explicit codex executable
        bundle_dir: Directory with bundled binaries
        debug: Log raw stream lines
        log_debug: Log to a temp file
        log_file: Log file path (set when log_debug=True)
        term_timeout: Seconds between SIGTERM and SIGKILL
        kill_timeout: Seconds to wait after SIGKILL
    """

    codex_bin: str | None = None
    bundle_dir: str | None = None
    debug: bool = False
    log_debug: bool = False
    log_file: str | None = None
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    def __repr__(self) -> str:
        return (
            f"Config(codex_bin={self.codex_bin}, "
            f"bundle_dir={self.bundle_dir}, "
            f"debug={self.debug}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout})"
        )


def _generate_log_file_path() -> str:
    """Return a timestamped log file path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "codex-stream"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"codex_stream_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("CODEX_STREAM_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        codex_bin=_parse_path(os.environ.get("CODEX_STREAM_BIN")),
        bundle_dir=_parse_path(os.environ.get("CODEX_STREAM_BUNDLE_DIR")),
        debug=_parse_bool(os.environ.get("CODEX_STREAM_DEBUG"), default=False),
        log_debug=log_debug,
        log_file=log_file,
        term_timeout=_parse_seconds(
            os.environ.get("CODEX_STREAM_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT
        ),
        kill_timeout=_parse_seconds(
            os.environ.get("CODEX_STREAM_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT
        ),
    )


# Global instance, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the configuration (for tests)."""
    global _config
    _config = load_config()
    return _config
