"""CodexOptions and build_args tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from codex_stream.options import CodexOptions, ColorMode, SandboxMode, build_args


class TestBuildArgs:
    def test_minimal(self):
        assert build_args("hello") == ["exec", "hello", "--json"]

    def test_empty_options_add_nothing(self):
        assert build_args("hello", CodexOptions()) == ["exec", "hello", "--json"]

    @pytest.mark.parametrize("prompt", ["", "   ", "\n"])
    def test_empty_prompt_rejected(self, prompt: str):
        with pytest.raises(ValueError):
            build_args(prompt)

    def test_all_options(self, tmp_path: Path):
        image_a = tmp_path / "a.png"
        image_b = tmp_path / "b.png"
        options = CodexOptions(
            config="model_reasoning_effort=high",
            image=[image_a, image_b],
            cd=tmp_path,
            sandbox=SandboxMode.WORKSPACE_WRITE,
            profile="ci",
            full_auto=True,
            dangerously_bypass_approvals_and_sandbox=True,
            skip_git_repo_check=True,
            color=ColorMode.NEVER,
            output_last_message=tmp_path / "last.txt",
            model="o3",
        )

        assert build_args("fix it", options) == [
            "exec", "fix it", "--json",
            "--config", "model_reasoning_effort=high",
            "--image", str(image_a),
            "--image", str(image_b),
            "--cd", str(tmp_path),
            "--sandbox", "workspace-write",
            "--profile", "ci",
            "--full-auto",
            "--dangerously-bypass-approvals-and-sandbox",
            "--skip-git-repo-check",
            "--color", "never",
            "--output-last-message", str(tmp_path / "last.txt"),
            "--model", "o3",
        ]

    def test_prompt_is_a_single_argument(self):
        args = build_args("rm -rf / --model x", CodexOptions(model="o3"))
        assert args[1] == "rm -rf / --model x"
        assert args.count("--model") == 1
        assert args[-2:] == ["--model", "o3"]


class TestCoercion:
    def test_strings_coerced(self):
        options = CodexOptions(image="a.png", cd="work", sandbox="read-only", color="auto")
        assert options.image == [Path("a.png")]
        assert options.cd == Path("work")
        assert options.sandbox is SandboxMode.READ_ONLY
        assert options.color is ColorMode.AUTO

    def test_unknown_sandbox_rejected(self):
        with pytest.raises(ValueError):
            CodexOptions(sandbox="everything")

    def test_unknown_color_rejected(self):
        with pytest.raises(ValueError):
            CodexOptions(color="rainbow")


class TestValidate:
    def test_missing_image(self, tmp_path: Path):
        options = CodexOptions(image=[tmp_path / "missing.png"])
        with pytest.raises(ValueError, match="missing.png"):
            options.validate()

    def test_missing_cd(self, tmp_path: Path):
        with pytest.raises(ValueError):
            CodexOptions(cd=tmp_path / "nowhere").validate()

    def test_valid(self, tmp_path: Path):
        image = tmp_path / "a.png"
        image.write_bytes(b"\x89PNG")
        CodexOptions(image=[image], cd=tmp_path).validate()

    def test_unknown_sandbox_assigned_later(self):
        options = CodexOptions()
        options.sandbox = "everything"
        with pytest.raises(ValueError):
            options.validate()

    def test_string_enums_assigned_later_coerced(self):
        options = CodexOptions()
        options.sandbox = "read-only"
        options.color = "never"
        options.validate()
        assert options.sandbox is SandboxMode.READ_ONLY
        assert options.to_args() == ["--sandbox", "read-only", "--color", "never"]
