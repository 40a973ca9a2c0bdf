"""Codex launch options and argument building.

codex-stream options v0.1.0

Command format:
    codex exec "{prompt}" --json \
      [--config {key=value}] \
      [--image {image}]... \
      [--cd {dir}] \
      [--sandbox {mode}] \
      [--profile {name}] \
      [--full-auto] \
      [--dangerously-bypass-approvals-and-sandbox] \
      [--skip-git-repo-check] \
      [--color {mode}] \
      [--output-last-message {file}] \
      [--model {model}]

Each optional field maps to zero or one flag/value pair (``image`` to one
pair per path).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

__all__ = [
    "SandboxMode",
    "ColorMode",
    "CodexOptions",
    "build_args",
]


class SandboxMode(str, Enum):
    """Sandbox policy for model-generated shell commands.

    - read_only: no writes at all (safest)
    - workspace_write: writes limited to the working root
    - danger_full_access: no restrictions
    """

    READ_ONLY = "read-only"
    WORKSPACE_WRITE = "workspace-write"
    DANGER_FULL_ACCESS = "danger-full-access"


class ColorMode(str, Enum):
    """Color settings for codex output."""

    ALWAYS = "always"
    NEVER = "never"
    AUTO = "auto"


@dataclass
class CodexOptions:
    """Options forwarded to ``codex exec``.

    Attributes:
        config: Override a config.toml value, ``dotted.path=value``
        image: Images attached to the initial prompt
        model: Model the agent should use
        sandbox: Sandbox policy
        profile: Configuration profile from config.toml
        full_auto: Low-friction sandboxed automatic execution
        dangerously_bypass_approvals_and_sandbox: Skip confirmations and sandboxing
        cd: Working root for the agent
        skip_git_repo_check: Allow running outside a Git repository
        color: Color settings
        output_last_message: File the agent's last message is written to
    """

    config: str = ""
    image: list[Path] = field(default_factory=list)
    model: str = ""
    sandbox: SandboxMode | None = None
    profile: str = ""
    full_auto: bool = False
    dangerously_bypass_approvals_and_sandbox: bool = False
    cd: Path | None = None
    skip_git_repo_check: bool = False
    color: ColorMode | None = None
    output_last_message: Path | None = None

    def __post_init__(self) -> None:
        """Coerce strings to paths and enums."""
        if isinstance(self.image, (str, Path)):
            self.image = [self.image]
        self.image = [Path(p) if isinstance(p, str) else p for p in self.image]
        if isinstance(self.cd, str):
            self.cd = Path(self.cd)
        if isinstance(self.output_last_message, str):
            self.output_last_message = Path(self.output_last_message)
        if isinstance(self.sandbox, str):
            self.sandbox = SandboxMode(self.sandbox)
        if isinstance(self.color, str):
            self.color = ColorMode(self.color)

    def validate(self) -> None:
        """Check enum values and that referenced files exist.

        Fields assigned after construction are coerced again here, so an
        unknown sandbox or color value is reported even if it bypassed
        ``__post_init__``. The prompt is checked by ``build_args``.

        Raises:
            ValueError: Unknown sandbox or color value, or an image or the
                working root does not exist
        """
        if self.sandbox is not None:
            self.sandbox = SandboxMode(self.sandbox)
        if self.color is not None:
            self.color = ColorMode(self.color)
        for img_path in self.image:
            if not img_path.exists():
                raise ValueError(f"Image file does not exist: {img_path}")
        if self.cd is not None and not self.cd.is_dir():
            raise ValueError(f"cd is not a directory: {self.cd}")

    def to_args(self) -> list[str]:
        """Flag/value pairs for the set options, in a stable order."""
        args: list[str] = []

        if self.config:
            args.extend(["--config", self.config])
        for img_path in self.image:
            args.extend(["--image", str(img_path)])
        if self.cd is not None:
            args.extend(["--cd", str(self.cd)])
        if self.sandbox is not None:
            args.extend(["--sandbox", self.sandbox.value])
        if self.profile:
            args.extend(["--profile", self.profile])
        if self.full_auto:
            args.append("--full-auto")
        if self.dangerously_bypass_approvals_and_sandbox:
            args.append("--dangerously-bypass-approvals-and-sandbox")
        if self.skip_git_repo_check:
            args.append("--skip-git-repo-check")
        if self.color is not None:
            args.extend(["--color", self.color.value])
        if self.output_last_message is not None:
            args.extend(["--output-last-message", str(self.output_last_message)])
        if self.model:
            args.extend(["--model", self.model])

        return args


def build_args(prompt: str, options: CodexOptions | None = None) -> list[str]:
    """Build the argument list (without the executable).

    Args:
        prompt: Task instruction
        options: Launch options

    Returns:
        ``["exec", prompt, "--json", ...]``

    Raises:
        ValueError: Empty prompt
    """
    if not prompt or not prompt.strip():
        raise ValueError("prompt is required")

    args = ["exec", prompt, "--json"]
    if options is not None:
        args.extend(options.to_args())
    return args
