"""Resource scraper: a cursor over resource roots plus the builder pipeline."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar, Iterable, Iterator, Sequence

from reposcrape.builders.base import Builder, UnionBuilder
from reposcrape.builders.filesystem import FilesystemBuilder
from reposcrape.core.scrape_logger import ScrapeLogger
from reposcrape.repositories.descriptor import RepositoryDescriptor
from reposcrape.resources.models import Resource, ResourceKind
from reposcrape.scanners.base import ScanContext, Scanner, UnionScanner
from reposcrape.scrapers.cursor import TraversalCursor

LOGGER = logging.getLogger(__name__)


class ResourceScraper(ABC):
    """Find resource roots in a mirror one at a time, in stable depth-first order."""

    kind: ClassVar[ResourceKind]
    resource_type: ClassVar[type[Resource]]

    def __init__(
        self,
        repository: RepositoryDescriptor,
        repo_dir: Path,
        *,
        ignorable_paths: Iterable[str] = (),
        scanners: Sequence[type[Scanner]] | None = None,
        builders: Sequence[type[Builder]] | None = None,
        context: ScanContext | None = None,
    ) -> None:
        self.repository = repository
        self.repo_dir = Path(repo_dir)
        self.ignorable_paths = frozenset(ignorable_paths)
        self.context = context or ScanContext()
        self.context.ignorable_paths = self.context.ignorable_paths | self.ignorable_paths
        self.logger: ScrapeLogger = self.context.logger
        self.cursor = TraversalCursor(self.repo_dir, self.ignorable_paths)

        scanner_types = self.default_scanners() if scanners is None else scanners
        self.scanner = UnionScanner([klass(self.context) for klass in scanner_types], self.context)
        builder_types = [FilesystemBuilder] if builders is None else builders
        self.builder = UnionBuilder(
            [self._build_builder(klass) for klass in builder_types], self.logger
        )

    def _build_builder(self, klass: type[Builder]) -> Builder:
        if issubclass(klass, FilesystemBuilder):
            return klass(self.scanner, ignorable_paths=self.ignorable_paths, logger=self.logger)
        return klass(self.logger)

    @classmethod
    @abstractmethod
    def default_scanners(cls) -> list[type[Scanner]]:
        ...

    @abstractmethod
    def is_resource_root(self, path: Path) -> bool:
        ...

    def next(self) -> Resource | None:
        """Return the next resource, running the builders over it, or None at the end."""
        with self.logger.operation("next"):
            while True:
                position = self.cursor.next_entry()
                if position is None:
                    return None
                path = self.cursor.absolute(position)
                if self.is_resource_root(path):
                    resource = self.resource_type(self.repository, position, self.repo_dir)
                    self.builder.go(resource.resource_dir, resource)
                    return resource
                if path.is_dir() and not path.is_symlink():
                    self.cursor.descend(position)

    def position(self) -> str:
        return self.cursor.position()

    def seek(self, position: str) -> None:
        self.cursor.seek(position)

    def rewind(self) -> None:
        self.cursor.rewind()

    def scrape(self) -> list[Resource]:
        resources = []
        while (resource := self.next()) is not None:
            resources.append(resource)
        return resources

    def close(self) -> None:
        self.builder.finish()

    def __iter__(self) -> Iterator[Resource]:
        return self

    def __next__(self) -> Resource:
        resource = self.next()
        if resource is None:
            raise StopIteration
        return resource

    def __enter__(self) -> ResourceScraper:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
