"""Workflow scraper."""

from __future__ import annotations

from pathlib import Path

from reposcrape.resources.models import ResourceKind, Workflow
from reposcrape.scanners.base import Scanner
from reposcrape.scanners.manifest import WorkflowManifestScanner
from reposcrape.scanners.workflow_metadata import WorkflowMetadataScanner
from reposcrape.scrapers.base import ResourceScraper


class WorkflowScraper(ResourceScraper):
    """A workflow root is a `.def` file with a `.meta` file beside it."""

    kind = ResourceKind.WORKFLOW
    resource_type = Workflow

    @classmethod
    def default_scanners(cls) -> list[type[Scanner]]:
        return [WorkflowMetadataScanner, WorkflowManifestScanner]

    def is_resource_root(self, path: Path) -> bool:
        if path.suffix != Workflow.DEFINITION_SUFFIX or not path.is_file():
            return False
        return path.with_suffix(Workflow.METADATA_SUFFIX).is_file()
