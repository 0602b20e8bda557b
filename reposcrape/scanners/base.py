"""Scanner visitor protocol and the union combinator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from reposcrape.core.config import ScraperSettings
from reposcrape.core.scrape_logger import ScrapeLogger
from reposcrape.resources.models import Resource

if TYPE_CHECKING:
    from reposcrape.scanners.metadata_generation import MetadataGenerator

LOGGER = logging.getLogger(__name__)

ContentProducer = Callable[[], bytes]


@dataclass(slots=True)
class ScanContext:
    """Shared inputs for the scanners of one scan pass."""

    logger: ScrapeLogger = field(default_factory=ScrapeLogger)
    freed_dir: Path | None = None
    ignorable_paths: frozenset[str] = frozenset()
    settings: ScraperSettings = field(default_factory=ScraperSettings)
    generator: MetadataGenerator | None = None


class Scanner:
    """Visitor notified of every file and directory beneath a resource root.

    `relative_position` is relative to the resource root; `None` names the
    root itself in `notice_dir`.
    """

    def __init__(self, context: ScanContext | None = None) -> None:
        self.context = context or ScanContext()
        self.logger = self.context.logger

    def begin(self, resource: Resource) -> None:
        pass

    def end(self, resource: Resource) -> None:
        pass

    def notice(self, relative_position: str, content: ContentProducer) -> None:
        pass

    def notice_dir(self, relative_position: str | None) -> bool:
        return True

    def finish(self) -> None:
        pass


def _memoize(content: ContentProducer) -> ContentProducer:
    cache: list[bytes] = []

    def shared() -> bytes:
        if not cache:
            cache.append(content())
        return cache[0]

    return shared


def _is_within(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


class UnionScanner(Scanner):
    """Run several scanners over one physical walk."""

    def __init__(self, scanners: Sequence[Scanner], context: ScanContext | None = None) -> None:
        super().__init__(context)
        self.scanners = list(scanners)
        self._pruned: list[list[str]] = [[] for _ in self.scanners]
        self._root_declined = [False for _ in self.scanners]

    def _active(self, relative_position: str | None) -> list[tuple[int, Scanner]]:
        active = []
        for index, scanner in enumerate(self.scanners):
            if self._root_declined[index]:
                continue
            if relative_position is not None and any(
                _is_within(relative_position, prefix) for prefix in self._pruned[index]
            ):
                continue
            active.append((index, scanner))
        return active

    def begin(self, resource: Resource) -> None:
        self._pruned = [[] for _ in self.scanners]
        self._root_declined = [False for _ in self.scanners]
        for scanner in self.scanners:
            scanner.begin(resource)

    def end(self, resource: Resource) -> None:
        for scanner in self.scanners:
            scanner.end(resource)

    def notice(self, relative_position: str, content: ContentProducer) -> None:
        shared = _memoize(content)
        for _, scanner in self._active(relative_position):
            scanner.notice(relative_position, shared)

    def notice_dir(self, relative_position: str | None) -> bool:
        interested = False
        for index, scanner in self._active(relative_position):
            if scanner.notice_dir(relative_position):
                interested = True
            elif relative_position is None:
                self._root_declined[index] = True
            else:
                self._pruned[index].append(relative_position)
        return interested

    def finish(self) -> None:
        for scanner in self.scanners:
            scanner.finish()
