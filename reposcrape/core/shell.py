"""Budgeted command runner bound to one retrieval."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Mapping, Sequence

from reposcrape.core.config import RetrievalBudget
from reposcrape.core.context import ExecutionContext
from reposcrape.core.errors import CommandFailedError, SizeLimitError, TimeLimitError
from reposcrape.core.supervisor import SupervisionResult, SupervisionStatus

LOGGER = logging.getLogger(__name__)

MIN_SECONDS_REMAINING = 5.0
BYTES_PER_MB = 1024 * 1024


class SupervisedShell:
    """Run commands against one watched directory with a shared deadline."""

    def __init__(
        self,
        context: ExecutionContext,
        budget: RetrievalBudget,
        watch_directory: Path,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.context = context
        self.budget = budget
        self.watch_directory = watch_directory
        self.cwd = cwd
        self.env = dict(env) if env else {}
        self.stop_timestamp: float | None = None
        if budget.max_seconds is not None:
            self.stop_timestamp = time.monotonic() + budget.max_seconds

    def execute(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        watch_directory: Path | None = None,
    ) -> str:
        """Run `command`; return its bounded output or raise a typed error."""
        return self._run(
            command, cwd=cwd, env=env, watch_directory=watch_directory, full_output=False
        ).output

    def output_for(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        return self._run(command, cwd=cwd, env=env, watch_directory=None, full_output=True).output

    def _remaining_budget(self) -> RetrievalBudget:
        if self.stop_timestamp is None:
            return self.budget
        remaining = self.stop_timestamp - time.monotonic()
        if remaining < MIN_SECONDS_REMAINING:
            raise TimeLimitError(
                f"Insufficient time remaining ({max(remaining, 0):.1f}s) to start another command."
            )
        return RetrievalBudget(max_bytes=self.budget.max_bytes, max_seconds=remaining)

    def _run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        watch_directory: Path | None,
        full_output: bool,
    ) -> SupervisionResult:
        budget = self._remaining_budget()
        result = self.context.supervisor.supervise(
            command,
            watch_directory or self.watch_directory,
            budget,
            cwd=cwd or self.cwd,
            env=self.context.command_env({**self.env, **(env or {})}),
            full_output=full_output,
        )
        if result.status is SupervisionStatus.SIZE_EXCEEDED:
            limit_mb = (self.budget.max_bytes or 0) / BYTES_PER_MB
            raise SizeLimitError(
                f"Exceeded size limit of {limit_mb:g} MB on repository directory. "
                "Hidden file and directory sizes are not included in the total.",
                command=result.command_str,
                exit_code=result.exit_code,
                output=result.output,
            )
        if result.status is SupervisionStatus.TIMEOUT:
            raise TimeLimitError(
                f"Timed out waiting for: {result.command_str}",
                command=result.command_str,
                exit_code=result.exit_code,
                output=result.output,
            )
        if result.exit_code != 0:
            raise CommandFailedError(
                f"Command failed with exit code {result.exit_code}: {result.command_str}\n{result.output}",
                command=result.command_str,
                exit_code=result.exit_code,
                output=result.output,
            )
        return result
