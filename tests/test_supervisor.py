from __future__ import annotations

import sys
from pathlib import Path

import pytest

from reposcrape.core.config import RetrievalBudget
from reposcrape.core.context import ExecutionContext
from reposcrape.core.errors import CommandFailedError, SizeLimitError, TimeLimitError, ToolUnavailableError
from reposcrape.core.shell import SupervisedShell
from reposcrape.core.supervisor import (
    ProcessSupervisor,
    SafeOutputBuffer,
    SupervisionStatus,
    directory_size,
    format_command,
    run_simple,
)


def python_command(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_supervise_success_captures_output(tmp_path: Path) -> None:
    supervisor = ProcessSupervisor(poll_interval_seconds=0.1)
    result = supervisor.supervise(
        python_command("print('hello'); print('world')"),
        tmp_path,
        RetrievalBudget(max_bytes=1_000_000, max_seconds=30),
    )
    assert result.status is SupervisionStatus.SUCCESS
    assert result.exit_code == 0
    assert result.output.splitlines() == ["hello", "world"]


def test_supervise_reports_nonzero_exit_as_success_status(tmp_path: Path) -> None:
    supervisor = ProcessSupervisor(poll_interval_seconds=0.1)
    result = supervisor.supervise(python_command("import sys; sys.exit(3)"), tmp_path, RetrievalBudget())
    assert result.status is SupervisionStatus.SUCCESS
    assert result.exit_code == 3
    assert not result.succeeded


def test_supervise_timeout_kills_and_keeps_partial_output(tmp_path: Path) -> None:
    supervisor = ProcessSupervisor(poll_interval_seconds=0.1, kill_grace_seconds=1.0)
    code = "import sys, time\nprint('started', flush=True)\ntime.sleep(30)\n"
    result = supervisor.supervise(python_command(code), tmp_path, RetrievalBudget(max_seconds=1.0))
    assert result.status is SupervisionStatus.TIMEOUT
    assert result.exit_code == -1
    assert "started" in result.output
    assert result.elapsed_seconds < 20


def test_supervise_size_exceeded(tmp_path: Path) -> None:
    supervisor = ProcessSupervisor(poll_interval_seconds=0.1, kill_grace_seconds=1.0)
    target = tmp_path / "blob.bin"
    code = f"import time\nopen({str(target)!r}, 'wb').write(b'x' * 200_000)\ntime.sleep(30)\n"
    result = supervisor.supervise(
        python_command(code), tmp_path, RetrievalBudget(max_bytes=1000, max_seconds=20)
    )
    assert result.status is SupervisionStatus.SIZE_EXCEEDED
    assert result.exit_code == -1


def test_exit_on_same_tick_as_budget_reports_success(tmp_path: Path) -> None:
    # the tick is far longer than the process lives, so exit and budget are observed together
    supervisor = ProcessSupervisor(poll_interval_seconds=10.0)
    target = tmp_path / "blob.bin"
    code = f"open({str(target)!r}, 'wb').write(b'x' * 50_000)"
    result = supervisor.supervise(
        python_command(code), tmp_path, RetrievalBudget(max_bytes=10)
    )
    assert result.status is SupervisionStatus.SUCCESS
    assert result.exit_code == 0


def test_missing_binary_is_tool_unavailable(tmp_path: Path) -> None:
    supervisor = ProcessSupervisor(poll_interval_seconds=0.1)
    with pytest.raises(ToolUnavailableError):
        supervisor.supervise(["definitely-not-a-real-binary-xyz"], tmp_path, RetrievalBudget())


def test_safe_output_buffer_bounds_lines() -> None:
    buffer = SafeOutputBuffer(max_line_count=3, max_line_length=10)
    for index in range(6):
        buffer.append(f"line {index}\n")
    buffer.append("x" * 50 + "\n")
    lines = buffer.display_text.splitlines()
    assert lines[0] == "..."
    assert lines[-1] == "xxxxxxx..."
    assert len(lines) == 4


def test_directory_size_ignores_hidden_entries(tmp_path: Path) -> None:
    (tmp_path / "visible.txt").write_bytes(b"a" * 10)
    hidden = tmp_path / ".git"
    hidden.mkdir()
    (hidden / "objects").write_bytes(b"b" * 1000)
    (tmp_path / ".hidden").write_bytes(b"c" * 1000)
    assert directory_size(tmp_path) == 10
    assert directory_size(tmp_path, include_hidden=True) == 2010


def test_run_simple_raises_on_nonzero_exit() -> None:
    with pytest.raises(CommandFailedError) as excinfo:
        run_simple(python_command("import sys; sys.stderr.write('boom'); sys.exit(2)"), timeout_seconds=30)
    assert excinfo.value.exit_code == 2
    assert "boom" in excinfo.value.output


def test_run_simple_timeout_is_typed() -> None:
    with pytest.raises(TimeLimitError):
        run_simple(python_command("import time; time.sleep(10)"), timeout_seconds=0.5)


def test_shell_raises_size_limit_error(tmp_path: Path) -> None:
    context = ExecutionContext(supervisor=ProcessSupervisor(poll_interval_seconds=0.1, kill_grace_seconds=1.0))
    shell = SupervisedShell(context, RetrievalBudget(max_bytes=1024 * 1024, max_seconds=30), tmp_path)
    target = tmp_path / "blob.bin"
    code = f"import time\nopen({str(target)!r}, 'wb').write(b'x' * 2_000_000)\ntime.sleep(30)\n"
    with pytest.raises(SizeLimitError) as excinfo:
        shell.execute(python_command(code))
    assert "Exceeded size limit of 1 MB" in str(excinfo.value)


def test_shell_refuses_to_start_without_time_left(tmp_path: Path) -> None:
    context = ExecutionContext(supervisor=ProcessSupervisor(poll_interval_seconds=0.1))
    shell = SupervisedShell(context, RetrievalBudget(max_seconds=2), tmp_path)
    with pytest.raises(TimeLimitError):
        shell.execute(python_command("print('never')"))


def test_shell_raises_on_nonzero_exit(tmp_path: Path) -> None:
    context = ExecutionContext(supervisor=ProcessSupervisor(poll_interval_seconds=0.1))
    shell = SupervisedShell(context, RetrievalBudget(), tmp_path)
    with pytest.raises(CommandFailedError) as excinfo:
        shell.execute(python_command("print('oops'); raise SystemExit(1)"))
    assert excinfo.value.exit_code == 1
    assert "oops" in excinfo.value.output


def test_safe_output_buffer_joins_partial_chunks() -> None:
    buffer = SafeOutputBuffer(max_line_count=5, max_line_length=10)
    buffer.append("hel")
    buffer.append("lo\nwor")
    buffer.append("ld\n")
    assert buffer.display_text.splitlines() == ["hello", "world"]


def test_safe_output_buffer_clips_unterminated_output() -> None:
    buffer = SafeOutputBuffer(max_line_count=5, max_line_length=10)
    for _ in range(1000):
        buffer.append("y" * 100)
    assert buffer.display_text == "yyyyyyy..."


def test_supervise_bounds_output_without_newlines(tmp_path: Path) -> None:
    supervisor = ProcessSupervisor(poll_interval_seconds=0.1, max_line_length=20)
    code = "import sys\nfor _ in range(200):\n    sys.stdout.write('z' * 10000)\n"
    result = supervisor.supervise(python_command(code), tmp_path, RetrievalBudget(max_seconds=30))
    assert result.status is SupervisionStatus.SUCCESS
    assert result.output == "z" * 17 + "..."


def test_format_command_masks_passwords() -> None:
    rendered = format_command(
        ["svn", "checkout", "--username", "alice", "--password", "s3cret", "--password=hunter2"]
    )
    assert "s3cret" not in rendered
    assert "hunter2" not in rendered
    assert "--username alice" in rendered
    assert "--password ******" in rendered


def test_failed_command_error_does_not_leak_password(tmp_path: Path) -> None:
    context = ExecutionContext(supervisor=ProcessSupervisor(poll_interval_seconds=0.1))
    shell = SupervisedShell(context, RetrievalBudget(), tmp_path)
    command = python_command("raise SystemExit(1)") + ["--password", "s3cret"]
    with pytest.raises(CommandFailedError) as excinfo:
        shell.execute(command)
    assert "s3cret" not in str(excinfo.value)
    assert "s3cret" not in excinfo.value.command
