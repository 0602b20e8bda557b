"""Static table mapping resource kinds to scraper types."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from reposcrape.builders.base import Builder
from reposcrape.repositories.descriptor import RepositoryDescriptor
from reposcrape.resources.models import ResourceKind
from reposcrape.scanners.base import ScanContext, Scanner
from reposcrape.scrapers.base import ResourceScraper
from reposcrape.scrapers.cookbook import CookbookScraper
from reposcrape.scrapers.workflow import WorkflowScraper

SCRAPER_TYPES: dict[ResourceKind, type[ResourceScraper]] = {
    ResourceKind.COOKBOOK: CookbookScraper,
    ResourceKind.WORKFLOW: WorkflowScraper,
}

_missing = set(ResourceKind) - set(SCRAPER_TYPES)
if _missing:
    raise RuntimeError(f"No scraper registered for: {sorted(kind.value for kind in _missing)}")


def create_scraper(
    kind: ResourceKind | str,
    repository: RepositoryDescriptor,
    repo_dir: Path,
    *,
    ignorable_paths: Iterable[str] = (),
    scanners: Sequence[type[Scanner]] | None = None,
    builders: Sequence[type[Builder]] | None = None,
    context: ScanContext | None = None,
) -> ResourceScraper:
    """Build the scraper registered for `kind`."""
    scraper_type = SCRAPER_TYPES[ResourceKind(kind)]
    return scraper_type(
        repository,
        repo_dir,
        ignorable_paths=ignorable_paths,
        scanners=scanners,
        builders=builders,
        context=context,
    )
