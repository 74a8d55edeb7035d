from __future__ import annotations

import sys
from pathlib import Path

import pytest

from indextts_launcher.errors import SpawnError
from indextts_launcher.runner import CommandRunner, CommandSpec, Platform


def test_run_captures_output_and_exit_code(command_runner: CommandRunner, python_spec) -> None:
    spec = python_spec("import sys; print('hello'); sys.stderr.write('warn\\n'); sys.exit(3)")
    result = command_runner.run(spec)
    assert result.exit_code == 3
    assert not result.ok
    assert result.stdout.strip() == "hello"
    assert result.stderr.strip() == "warn"


def test_run_applies_cwd_and_env_overrides(
    command_runner: CommandRunner, python_spec, tmp_path: Path
) -> None:
    spec = python_spec(
        "import os; print(os.getcwd()); print(os.environ['LAUNCHER_TEST'])",
        cwd=tmp_path,
        env={"LAUNCHER_TEST": "value"},
    )
    result = command_runner.run(spec)
    cwd, value = result.stdout.splitlines()
    assert Path(cwd).resolve() == tmp_path.resolve()
    assert value == "value"


def test_run_forces_unbuffered_utf8_children(command_runner: CommandRunner, python_spec) -> None:
    result = command_runner.run(
        python_spec("import os; print(os.environ['PYTHONUNBUFFERED'], os.environ['PYTHONIOENCODING'])")
    )
    assert result.stdout.split() == ["1", "utf-8"]


def test_run_decodes_invalid_utf8_with_replacement(
    command_runner: CommandRunner, python_spec
) -> None:
    result = command_runner.run(python_spec("import sys; sys.stdout.buffer.write(b'ok\\xff\\n')"))
    assert result.stdout == "ok\ufffd\n"


def test_missing_program_raises_spawn_error(command_runner: CommandRunner, tmp_path: Path) -> None:
    spec = CommandSpec.of(str(tmp_path / "definitely-not-installed"))
    with pytest.raises(SpawnError) as excinfo:
        command_runner.run(spec)
    assert "definitely-not-installed" in str(excinfo.value)
    with pytest.raises(SpawnError):
        command_runner.spawn(spec)


def test_spawn_exposes_binary_pipes(command_runner: CommandRunner, python_spec) -> None:
    process = command_runner.spawn(python_spec("print('streamed')"))
    assert process.stdout is not None
    output = process.stdout.read()
    assert process.wait() == 0
    assert output.strip() == b"streamed"


def test_command_spec_display_quotes_arguments() -> None:
    spec = CommandSpec.of("git", "commit", "-m", "two words", cwd="repo")
    assert spec.argv == ["git", "commit", "-m", "two words"]
    assert spec.display() == "git commit -m 'two words'"
    assert spec.cwd == Path("repo")


def test_platform_resolution_matches_interpreter() -> None:
    current = Platform.current()
    if sys.platform.startswith("linux"):
        assert current is Platform.LINUX
        assert current.is_unix
    elif sys.platform == "darwin":
        assert current is Platform.MACOS
    elif sys.platform.startswith("win"):
        assert current is Platform.WINDOWS
        assert not current.is_unix
