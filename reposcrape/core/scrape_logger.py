"""Phase-aware operation logger that accumulates errors and warnings."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Literal

LOGGER = logging.getLogger(__name__)

Phase = Literal["begin", "commit", "abort"]
PhaseCallback = Callable[[Phase, str, str, "BaseException | None"], None]


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    exception: BaseException | None
    phase: str
    explanation: str


class ScrapeLogger:
    """Record operation phases, errors and warnings for one scraper."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        callback: PhaseCallback | None = None,
    ) -> None:
        self.logger = logger or LOGGER
        self.callback = callback
        self.errors: list[ErrorRecord] = []
        self.warnings: list[str] = []
        self._abort_seen = False

    @contextmanager
    def operation(self, type_: str, explanation: str = "") -> Iterator[None]:
        """Wrap a block in begin/commit/abort phase notes."""
        self.note_phase("begin", type_, explanation)
        try:
            yield
        except BaseException as exc:
            self.note_phase("abort", type_, explanation, exc)
            raise
        self.note_phase("commit", type_, explanation)

    def note_phase(
        self,
        phase: Phase,
        type_: str,
        explanation: str,
        exception: BaseException | None = None,
    ) -> None:
        if phase == "begin":
            self._abort_seen = False
            self.logger.debug("begin %s %s", type_, explanation)
        elif phase == "commit":
            self.logger.debug("commit %s %s", type_, explanation)
        elif not self._abort_seen:
            # only the innermost abort of a nested chain is an error
            self._abort_seen = True
            self.note_error(exception, type_, explanation)
        if self.callback is not None:
            self.callback(phase, type_, explanation, exception)

    def note_error(
        self,
        exception: BaseException | None,
        type_: str,
        explanation: str = "",
    ) -> None:
        self.errors.append(ErrorRecord(exception, type_, explanation))
        self.logger.error("%s failed: %s %s", type_, exception, explanation)

    def note_warning(self, message: str) -> None:
        self.warnings.append(message)
        self.logger.warning(message)
