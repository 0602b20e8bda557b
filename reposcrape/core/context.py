"""Execution context passed explicitly down the retrieval call chain."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from reposcrape.core.config import ScraperSettings
from reposcrape.core.errors import CommandFailedError, ToolUnavailableError
from reposcrape.core.supervisor import ProcessSupervisor, run_simple

LOGGER = logging.getLogger(__name__)

VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


@dataclass(frozen=True, slots=True)
class ToolProbe:
    tool: str
    available: bool
    version: tuple[int, ...] | None
    detail: str = ""


def parse_version(text: str) -> tuple[int, ...] | None:
    """Extract the first dotted version number from tool output."""
    match = VERSION_RE.search(text)
    if not match:
        return None
    return tuple(int(part) for part in match.groups() if part is not None)


@dataclass(slots=True)
class ToolCapabilities:
    """Memoized tool probes; a tool's identity cannot change mid-run."""

    timeout_seconds: float = 30.0
    _probes: dict[str, ToolProbe] = field(default_factory=dict)

    def probe(
        self,
        tool: str,
        command: Sequence[str],
        minimum: tuple[int, ...] = (),
    ) -> ToolProbe:
        cached = self._probes.get(tool)
        if cached is not None:
            return cached

        try:
            result = run_simple(command, timeout_seconds=self.timeout_seconds)
        except (ToolUnavailableError, CommandFailedError) as exc:
            probe = ToolProbe(tool=tool, available=False, version=None, detail=str(exc))
        else:
            version = parse_version(result.stdout or result.stderr)
            if version is None:
                probe = ToolProbe(tool, False, None, f"unrecognized version output for {tool}")
            elif version < minimum:
                probe = ToolProbe(tool, False, version, f"{tool} {version} is older than {minimum}")
            else:
                probe = ToolProbe(tool, True, version)
        if not probe.available:
            LOGGER.warning("Tool %s unavailable: %s", tool, probe.detail)
        self._probes[tool] = probe
        return probe


@dataclass(slots=True)
class ExecutionContext:
    """Constructed once per scraper and shared by its retrievers."""

    supervisor: ProcessSupervisor = field(default_factory=ProcessSupervisor)
    capabilities: ToolCapabilities = field(default_factory=ToolCapabilities)
    environment: dict[str, str] = field(default_factory=dict)
    simple_command_timeout_seconds: float = 60.0

    @classmethod
    def from_settings(cls, settings: ScraperSettings) -> ExecutionContext:
        supervisor = ProcessSupervisor(
            poll_interval_seconds=settings.poll_interval_seconds,
            kill_grace_seconds=settings.kill_grace_seconds,
            max_line_count=settings.output_max_line_count,
            max_line_length=settings.output_max_line_length,
        )
        return cls(
            supervisor=supervisor,
            capabilities=ToolCapabilities(timeout_seconds=settings.simple_command_timeout_seconds),
            simple_command_timeout_seconds=settings.simple_command_timeout_seconds,
        )

    def command_env(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Build a child environment without touching `os.environ`."""
        env = os.environ.copy()
        env.update(self.environment)
        if extra:
            env.update(extra)
        return env
