"""Walk a resource directory and feed its entries to a scanner."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from reposcrape.builders.base import Builder
from reposcrape.core.scrape_logger import ScrapeLogger
from reposcrape.resources.models import Resource
from reposcrape.scanners.base import ContentProducer, Scanner

LOGGER = logging.getLogger(__name__)


def sorted_entries(directory: Path, ignorable: Iterable[str] = ()) -> list[os.DirEntry[str]]:
    """Read one directory listing in name order; the handle is closed on return."""
    skip = set(ignorable)
    with os.scandir(directory) as handle:
        entries = [entry for entry in handle if entry.name not in skip]
    entries.sort(key=lambda entry: entry.name)
    return entries


def _file_reader(path: str) -> ContentProducer:
    def read() -> bytes:
        with open(path, "rb") as handle:
            return handle.read()

    return read


class FilesystemBuilder(Builder):
    """Depth-first walk in name order, with an explicit stack."""

    def __init__(
        self,
        scanner: Scanner,
        *,
        ignorable_paths: Iterable[str] = (),
        logger: ScrapeLogger | None = None,
    ) -> None:
        super().__init__(logger)
        self.scanner = scanner
        self.ignorable_paths = frozenset(ignorable_paths)

    def go(self, directory: Path, resource: Resource) -> None:
        self.scanner.begin(resource)
        if self.scanner.notice_dir(None):
            self._walk(Path(directory))
        self.scanner.end(resource)

    def _walk(self, directory: Path) -> None:
        stack = [("", iter(sorted_entries(directory, self.ignorable_paths)))]
        while stack:
            prefix, entries = stack[-1]
            entry = next(entries, None)
            if entry is None:
                stack.pop()
                continue
            relative = f"{prefix}{entry.name}"
            if entry.is_symlink() and (entry.is_dir() or not os.path.exists(entry.path)):
                LOGGER.debug("Skipping symlink %s", entry.path)
            elif entry.is_dir(follow_symlinks=False):
                if self.scanner.notice_dir(relative):
                    stack.append((f"{relative}/", iter(sorted_entries(Path(entry.path), self.ignorable_paths))))
            else:
                self.scanner.notice(relative, _file_reader(entry.path))

    def finish(self) -> None:
        self.scanner.finish()
