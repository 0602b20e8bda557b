"""Run external commands under byte-size and wall-clock budgets."""

from __future__ import annotations

import codecs
import io
import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Sequence, cast

from reposcrape.core.config import RetrievalBudget
from reposcrape.core.errors import (
    CommandFailedError,
    TimeLimitError,
    ToolUnavailableError,
)

LOGGER = logging.getLogger(__name__)

ELLIPSIS = "..."
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_KILL_GRACE_SECONDS = 5.0
READER_JOIN_SECONDS = 2.0
READ_CHUNK_BYTES = 8192
MASK = "******"
SECRET_OPTIONS = frozenset({"--password"})


class SupervisionStatus(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    SIZE_EXCEEDED = "size_exceeded"


@dataclass(frozen=True, slots=True)
class SupervisionResult:
    status: SupervisionStatus
    exit_code: int
    output: str
    elapsed_seconds: float
    command_str: str

    @property
    def succeeded(self) -> bool:
        return self.status is SupervisionStatus.SUCCESS and self.exit_code == 0


@dataclass(frozen=True, slots=True)
class CommandResult:
    exit_code: int
    elapsed_seconds: float
    command_str: str
    stdout: str
    stderr: str


class SafeOutputBuffer:
    """Keep the last few lines of output, truncating long lines."""

    def __init__(self, max_line_count: int = 10, max_line_length: int = 128) -> None:
        self.max_line_count = max(max_line_count, 1)
        self.max_line_length = max(max_line_length, len(ELLIPSIS) + 1)
        self._lines: deque[str] = deque(maxlen=self.max_line_count)
        self._dropped = False
        self._pending = ""
        self._lock = threading.Lock()

    def append(self, text: str) -> None:
        """Accept arbitrary chunks; an unterminated tail is held until its newline arrives."""
        with self._lock:
            lines = (self._pending + text).split("\n")
            self._pending = self._clip(lines.pop())
            for line in lines:
                if len(self._lines) == self.max_line_count:
                    self._dropped = True
                self._lines.append(self._clip(line.rstrip("\r")))

    def _clip(self, line: str) -> str:
        if len(line) > self.max_line_length:
            return line[: self.max_line_length - len(ELLIPSIS)] + ELLIPSIS
        return line

    @property
    def display_text(self) -> str:
        with self._lock:
            lines = list(self._lines)
            dropped = self._dropped
            if self._pending:
                lines.append(self._pending)
        if len(lines) > self.max_line_count:
            lines = lines[-self.max_line_count :]
            dropped = True
        if dropped:
            lines.insert(0, ELLIPSIS)
        return "\n".join(lines)


class FullOutputBuffer:
    """Keep every line of output; only for callers that parse it."""

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._lock = threading.Lock()

    def append(self, text: str) -> None:
        with self._lock:
            self._chunks.append(text)

    @property
    def display_text(self) -> str:
        with self._lock:
            return "".join(self._chunks)


def format_command(command: Sequence[str]) -> str:
    """Quote a command for display, masking the values of secret options."""
    parts = []
    masked = False
    for part in map(str, command):
        if masked:
            parts.append(MASK)
            masked = False
            continue
        option, sep, _ = part.partition("=")
        if sep and option in SECRET_OPTIONS:
            parts.append(f"{option}={MASK}")
            continue
        masked = part in SECRET_OPTIONS
        parts.append(shlex.quote(part))
    return " ".join(parts)


def directory_size(
    path: Path,
    *,
    limit: int | None = None,
    include_hidden: bool = False,
) -> int:
    """Sum file sizes under `path`, stopping early once `limit` is exceeded."""
    total = 0
    for root, dirnames, filenames in os.walk(path):
        if not include_hidden:
            dirnames[:] = [name for name in dirnames if not name.startswith(".")]
        for name in filenames:
            if not include_hidden and name.startswith("."):
                continue
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError:
                continue
            if limit is not None and total > limit:
                return total
    return total


def _pump_output(stream: io.BufferedReader, sink: SafeOutputBuffer | FullOutputBuffer) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    with stream:
        for chunk in iter(lambda: stream.read1(READ_CHUNK_BYTES), b""):
            sink.append(decoder.decode(chunk))
        sink.append(decoder.decode(b"", final=True))


class ProcessSupervisor:
    """Spawn commands and enforce size/time budgets with a polling loop."""

    def __init__(
        self,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
        max_line_count: int = 10,
        max_line_length: int = 128,
    ) -> None:
        self.poll_interval_seconds = poll_interval_seconds
        self.kill_grace_seconds = kill_grace_seconds
        self.max_line_count = max_line_count
        self.max_line_length = max_line_length

    def supervise(
        self,
        command: Sequence[str],
        watch_directory: Path | None,
        budget: RetrievalBudget,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        full_output: bool = False,
    ) -> SupervisionResult:
        """Run `command` until it exits or a budget trips."""
        command_str = format_command(command)
        buffer: SafeOutputBuffer | FullOutputBuffer
        if full_output:
            buffer = FullOutputBuffer()
        else:
            buffer = SafeOutputBuffer(self.max_line_count, self.max_line_length)

        LOGGER.info("+ %s", command_str)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(  # noqa: S603
                [str(part) for part in command],
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise ToolUnavailableError(f"Command not found: {command[0]}") from exc

        stdout = cast(io.BufferedReader, proc.stdout)
        reader = threading.Thread(
            target=_pump_output, args=(stdout, buffer), daemon=True
        )
        reader.start()

        status, exit_code = self._poll(proc, watch_directory, budget, start)
        if status is not SupervisionStatus.SUCCESS:
            self._interrupt(proc)
            exit_code = -1

        reader.join(READER_JOIN_SECONDS)
        elapsed = time.monotonic() - start
        LOGGER.debug("%s finished with %s (%s) in %.2fs", command_str, status.value, exit_code, elapsed)
        return SupervisionResult(
            status=status,
            exit_code=exit_code,
            output=buffer.display_text,
            elapsed_seconds=elapsed,
            command_str=command_str,
        )

    def _poll(
        self,
        proc: subprocess.Popen[bytes],
        watch_directory: Path | None,
        budget: RetrievalBudget,
        start: float,
    ) -> tuple[SupervisionStatus, int]:
        while True:
            try:
                exit_code = proc.wait(timeout=self._tick_seconds(budget, start))
            except subprocess.TimeoutExpired:
                exit_code = None
            if exit_code is not None:
                return SupervisionStatus.SUCCESS, exit_code

            tripped: SupervisionStatus | None = None
            if budget.max_bytes is not None and watch_directory is not None:
                size = directory_size(watch_directory, limit=budget.max_bytes)
                if size > budget.max_bytes:
                    tripped = SupervisionStatus.SIZE_EXCEEDED
            if (
                tripped is None
                and budget.max_seconds is not None
                and time.monotonic() - start > budget.max_seconds
            ):
                tripped = SupervisionStatus.TIMEOUT
            if tripped is None:
                continue

            # an exit observed on the same tick wins over the tripped budget
            late_exit = proc.poll()
            if late_exit is not None:
                return SupervisionStatus.SUCCESS, late_exit
            return tripped, -1

    def _tick_seconds(self, budget: RetrievalBudget, start: float) -> float:
        tick = self.poll_interval_seconds
        if budget.max_seconds is not None:
            remaining = budget.max_seconds - (time.monotonic() - start)
            tick = min(tick, max(remaining, 0.01))
        return tick

    def _interrupt(self, proc: subprocess.Popen[bytes]) -> None:
        for sig in (signal.SIGINT, signal.SIGKILL):
            try:
                os.killpg(proc.pid, sig)
            except ProcessLookupError:
                return
            try:
                proc.wait(timeout=self.kill_grace_seconds)
                return
            except subprocess.TimeoutExpired:
                LOGGER.warning("Process %s ignored %s", proc.pid, sig.name)


def run_simple(
    command: Sequence[str],
    *,
    timeout_seconds: float,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a short auxiliary command; raise on missing binary, timeout or nonzero exit."""
    command_str = format_command(command)
    LOGGER.debug("+ %s", command_str)
    start = time.monotonic()
    try:
        completed = subprocess.run(  # noqa: S603
            [str(part) for part in command],
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout_seconds,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ToolUnavailableError(f"Command not found: {command[0]}") from exc
    except subprocess.TimeoutExpired as exc:
        raise TimeLimitError(
            f"Timed out after {timeout_seconds}s: {command_str}",
            command=command_str,
        ) from exc

    elapsed = time.monotonic() - start
    if completed.returncode != 0:
        raise CommandFailedError(
            f"Command failed with exit code {completed.returncode}: {command_str}",
            command=command_str,
            exit_code=completed.returncode,
            output=(completed.stderr or completed.stdout).strip(),
        )
    return CommandResult(
        exit_code=completed.returncode,
        elapsed_seconds=elapsed,
        command_str=command_str,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )
