"""Retriever base class and mirror directory layout."""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import ClassVar, Iterator

from reposcrape.core.config import RetrievalBudget
from reposcrape.core.context import ExecutionContext
from reposcrape.core.scrape_logger import ScrapeLogger
from reposcrape.core.shell import SupervisedShell
from reposcrape.repositories.descriptor import RepositoryDescriptor, RepositoryKind

LOGGER = logging.getLogger(__name__)

MIRROR_DIRNAME = "repo"
FREED_DIRNAME = "freed"


def workdir_for(basedir: Path, repository: RepositoryDescriptor) -> Path:
    return Path(basedir) / repository.repository_hash


def mirror_dir(basedir: Path, repository: RepositoryDescriptor) -> Path:
    """Directory holding the retrieved copy of `repository`."""
    return workdir_for(basedir, repository) / MIRROR_DIRNAME


def freed_dir(basedir: Path, repository: RepositoryDescriptor) -> Path:
    """Sibling directory for artifacts generated from the mirror."""
    return workdir_for(basedir, repository) / FREED_DIRNAME


def remove_tree(path: Path, *, ignore_errors: bool = False) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
    elif path.exists():
        shutil.rmtree(path, ignore_errors=ignore_errors)


class Retriever(ABC):
    """Fetch one repository into its local mirror."""

    kind: ClassVar[RepositoryKind]
    ignorable_paths: ClassVar[frozenset[str]] = frozenset()

    def __init__(
        self,
        repository: RepositoryDescriptor,
        *,
        basedir: Path,
        budget: RetrievalBudget | None = None,
        logger: ScrapeLogger | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        self.repository = repository
        self.basedir = Path(basedir)
        self.budget = budget or RetrievalBudget()
        self.logger = logger or ScrapeLogger()
        self.context = context or ExecutionContext()
        self.workdir = workdir_for(self.basedir, repository)
        self.repo_dir = mirror_dir(self.basedir, repository)
        self.freed_dir = freed_dir(self.basedir, repository)
        self._shell: SupervisedShell | None = None

    @abstractmethod
    def available(self) -> bool:
        """Return True when the external tools this retriever drives are usable."""

    @abstractmethod
    def retrieve(self) -> bool:
        """Bring the mirror up to date; return True when it changed."""

    def shell(self) -> SupervisedShell:
        """Shell shared by every command of the current retrieve; created on first use."""
        if self._shell is None:
            self._shell = SupervisedShell(self.context, self.budget, self.repo_dir, cwd=self.repo_dir)
        return self._shell

    @contextmanager
    def deadline(self) -> Iterator[SupervisedShell]:
        """Start the time budget for one retrieve; every command inside shares it."""
        self._shell = None
        try:
            yield self.shell()
        finally:
            self._shell = None
