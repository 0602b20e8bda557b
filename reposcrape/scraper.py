"""Retrieve a repository and scrape the resources inside it."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Mapping, Sequence

from reposcrape.builders.base import Builder
from reposcrape.core.config import RetrievalBudget, ScraperSettings, load_settings
from reposcrape.core.context import ExecutionContext
from reposcrape.core.errors import MetadataError
from reposcrape.core.scrape_logger import ErrorRecord, PhaseCallback, ScrapeLogger
from reposcrape.repositories.descriptor import RepositoryDescriptor
from reposcrape.resources.models import Resource, ResourceKind
from reposcrape.retrievers.base import mirror_dir, remove_tree
from reposcrape.retrievers.registry import create_retriever
from reposcrape.scanners.base import ScanContext, Scanner
from reposcrape.scanners.cookbook_metadata import ReadOnlyCookbookMetadataScanner
from reposcrape.scanners.metadata_generation import CommandMetadataGenerator, MetadataGenerator
from reposcrape.scrapers.base import ResourceScraper
from reposcrape.scrapers.registry import create_scraper

LOGGER = logging.getLogger(__name__)


class Scraper:
    """Scrape repositories one at a time, accumulating resources, errors and warnings."""

    def __init__(
        self,
        kind: ResourceKind | str | None = None,
        *,
        basedir: Path | str | None = None,
        settings: ScraperSettings | None = None,
        budget: RetrievalBudget | None = None,
        scanners: Sequence[type[Scanner]] | None = None,
        builders: Sequence[type[Builder]] | None = None,
        generator: MetadataGenerator | None = None,
        context: ExecutionContext | None = None,
        logger: ScrapeLogger | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.kind = ResourceKind(kind) if kind is not None else None
        basedir = basedir if basedir is not None else self.settings.basedir
        self.basedir = Path(basedir) if basedir is not None else None
        self.budget = budget or self.settings.budget()
        self.scanners = scanners
        self.builders = builders
        self.context = context or ExecutionContext.from_settings(self.settings)
        self.generator = generator or CommandMetadataGenerator(
            self.settings.metadata_command,
            context=self.context,
            timeout_seconds=self.settings.metadata_generation_timeout_seconds,
            max_bytes=self.settings.jailed_size_limit_bytes,
        )
        self.logger = logger or ScrapeLogger()
        self.resources: list[Resource] = []
        self.last_changed: bool | None = None

    @property
    def errors(self) -> list[ErrorRecord]:
        return self.logger.errors

    @property
    def warnings(self) -> list[str]:
        return self.logger.warnings

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def generates_metadata(self) -> bool:
        """False when a read-only scanner reuses artifacts left by an earlier pass."""
        return not any(
            issubclass(scanner, ReadOnlyCookbookMetadataScanner) for scanner in self.scanners or ()
        )

    def repo_dir(self, repository: RepositoryDescriptor) -> Path | None:
        if self.basedir is None:
            return None
        return mirror_dir(self.basedir, repository)

    def scrape(
        self,
        repository: RepositoryDescriptor | Mapping[str, Any],
        incremental: bool = True,
        callback: PhaseCallback | None = None,
    ) -> bool:
        """Retrieve and scrape one repository; return True when no new errors were recorded."""
        errorlen = len(self.errors)
        self.logger.callback = callback
        temporary_basedir: Path | None = None
        try:
            with self.logger.operation("scrape"):
                if not isinstance(repository, RepositoryDescriptor):
                    repository = RepositoryDescriptor.from_dict(
                        repository, validate=self.settings.validate_urls
                    )
                basedir = self.basedir
                if basedir is None:
                    temporary_basedir = Path(tempfile.mkdtemp(prefix="reposcrape-"))
                    basedir = temporary_basedir
                self._scrape(repository, basedir, incremental)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Scrape of %s failed: %s", repository, exc)
        finally:
            self.logger.callback = None
            if temporary_basedir is not None:
                shutil.rmtree(temporary_basedir, ignore_errors=True)
        return len(self.errors) == errorlen

    def _scrape(self, repository: RepositoryDescriptor, basedir: Path, incremental: bool) -> None:
        retriever = create_retriever(
            repository,
            basedir=basedir,
            budget=self.budget,
            logger=self.logger,
            context=self.context,
            allow_self_heal=self.settings.allow_branch_self_heal,
        )
        if not incremental:
            remove_tree(retriever.repo_dir)
        with self.logger.operation("retrieving", f"from {repository}"):
            self.last_changed = retriever.retrieve()

        if self.kind is None:
            return
        if self.generates_metadata:
            remove_tree(retriever.freed_dir)
        context = ScanContext(
            logger=self.logger,
            freed_dir=retriever.freed_dir,
            settings=self.settings,
            generator=self.generator,
        )
        with self.logger.operation("scraping", str(retriever.repo_dir)):
            scraper = create_scraper(
                self.kind,
                repository,
                retriever.repo_dir,
                ignorable_paths=retriever.ignorable_paths,
                scanners=self.scanners,
                builders=self.builders,
                context=context,
            )
            with scraper:
                self._collect(scraper)

    def _collect(self, scraper: ResourceScraper) -> None:
        while True:
            try:
                resource = scraper.next()
            except MetadataError:
                # already recorded; continue with the next resource
                continue
            if resource is None:
                return
            self.resources.append(resource)
