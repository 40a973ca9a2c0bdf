"""Locating the codex executable.

Resolution order:
1. An explicit path passed by the caller
2. ``CODEX_STREAM_BIN``
3. A bundled ``codex-<target triple>`` in the bundle directory, if present
4. ``codex`` on PATH
5. The bare name ``codex``; spawning then fails with ``SpawnError``
"""

from __future__ import annotations

import logging
import os
import platform as _platform
import shutil
import stat
import sys
from pathlib import Path

from .config import get_config
from .errors import BinaryNotExecutableError, UnsupportedPlatformError

__all__ = [
    "DEFAULT_BINARY",
    "target_triple",
    "bundled_binary_path",
    "resolve_codex_binary",
    "ensure_executable",
]

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "codex"

# Default bundle location: <package>/bin
DEFAULT_BUNDLE_DIR = Path(__file__).resolve().parent / "bin"

_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}

_TRIPLES = {
    ("linux", "x86_64"): "x86_64-unknown-linux-musl",
    ("linux", "aarch64"): "aarch64-unknown-linux-musl",
    ("darwin", "x86_64"): "x86_64-apple-darwin",
    ("darwin", "aarch64"): "aarch64-apple-darwin",
    ("win32", "x86_64"): "x86_64-pc-windows-msvc.exe",
}


def target_triple(platform: str | None = None, machine: str | None = None) -> str:
    """Map an OS/architecture pair to the bundled binary suffix.

    Args:
        platform: ``sys.platform`` style name (default: current)
        machine: ``platform.machine()`` style name (default: current)

    Raises:
        UnsupportedPlatformError: No binary is built for this pair
    """
    platform = platform if platform is not None else sys.platform
    machine = machine if machine is not None else _platform.machine()

    os_name = "linux" if platform.startswith(("linux", "android")) else platform
    arch = _ARCH_ALIASES.get(machine.lower())

    triple = _TRIPLES.get((os_name, arch)) if arch else None
    if triple is None:
        raise UnsupportedPlatformError(platform, machine)
    return triple


def bundled_binary_path(bundle_dir: str | Path | None = None) -> Path:
    """Path of the bundled binary for the current platform (may not exist)."""
    if bundle_dir is None:
        bundle_dir = get_config().bundle_dir or DEFAULT_BUNDLE_DIR
    return Path(bundle_dir) / f"codex-{target_triple()}"


def resolve_codex_binary(
    explicit: str | Path | None = None,
    bundle_dir: str | Path | None = None,
) -> str:
    """Return the codex executable to launch."""
    if explicit:
        return str(explicit)

    env_bin = get_config().codex_bin
    if env_bin:
        return env_bin

    try:
        bundled = bundled_binary_path(bundle_dir)
    except UnsupportedPlatformError as e:
        logger.debug(f"No bundled binary: {e}")
    else:
        if bundled.is_file():
            return str(bundled)

    on_path = shutil.which(DEFAULT_BINARY)
    if on_path:
        return on_path

    logger.debug(f"{DEFAULT_BINARY} not found, spawning by name")
    return DEFAULT_BINARY


def ensure_executable(path: str | Path) -> None:
    """Make ``path`` executable if it is not.

    Raises:
        BinaryNotExecutableError: chmod failed
    """
    if os.access(path, os.X_OK):
        return
    try:
        os.chmod(path, 0o755)
    except OSError as e:
        raise BinaryNotExecutableError(str(path)) from e
    mode = os.stat(path).st_mode
    if not mode & stat.S_IXUSR:
        raise BinaryNotExecutableError(str(path))
    logger.debug(f"Marked executable: {path}")
