"""Collaborator that turns a jailed cookbook copy into metadata.json."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

from reposcrape.core.config import RetrievalBudget
from reposcrape.core.context import ExecutionContext
from reposcrape.core.errors import MetadataError, ScraperError
from reposcrape.core.supervisor import SupervisionStatus

LOGGER = logging.getLogger(__name__)


class MetadataGenerator(Protocol):
    def generate(self, workspace: Path, cookbook_dir: Path, position: str) -> None:
        """Write `cookbook_dir / "metadata.json"` or raise MetadataError."""


class CommandMetadataGenerator:
    """Run a configured command against the jailed cookbook directory."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        context: ExecutionContext | None = None,
        timeout_seconds: float = 120.0,
        max_bytes: int | None = None,
    ) -> None:
        self.command = list(command)
        self.context = context or ExecutionContext()
        self.budget = RetrievalBudget(max_bytes=max_bytes, max_seconds=timeout_seconds)

    def generate(self, workspace: Path, cookbook_dir: Path, position: str) -> None:
        if not self.command:
            raise MetadataError(
                f"No metadata generator is configured; cannot generate metadata for {position!r}"
            )
        try:
            result = self.context.supervisor.supervise(
                [*self.command, str(cookbook_dir)],
                workspace,
                self.budget,
                cwd=workspace,
                env=self.context.command_env({"LC_ALL": "en_US.UTF-8"}),
            )
        except ScraperError as exc:
            raise MetadataError(f"Metadata generation failed for {position!r}: {exc}") from exc
        if result.status is SupervisionStatus.SIZE_EXCEEDED:
            raise MetadataError(f"Metadata generation for {position!r} exceeded its size limit")
        if result.status is SupervisionStatus.TIMEOUT:
            raise MetadataError(f"Metadata generation for {position!r} timed out")
        if result.exit_code != 0:
            raise MetadataError(
                f"Metadata generation for {position!r} failed with exit code "
                f"{result.exit_code}:\n{result.output}"
            )
