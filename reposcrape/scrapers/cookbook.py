"""Cookbook scraper."""

from __future__ import annotations

from pathlib import Path

from reposcrape.resources.models import Cookbook, ResourceKind
from reposcrape.scanners.base import Scanner
from reposcrape.scanners.cookbook_metadata import JSON_METADATA, RUBY_METADATA, CookbookMetadataScanner
from reposcrape.scanners.filename import FilenameScanner
from reposcrape.scanners.manifest import ManifestScanner
from reposcrape.scrapers.base import ResourceScraper


class CookbookScraper(ResourceScraper):
    """A cookbook root is a directory holding metadata.json or metadata.rb."""

    kind = ResourceKind.COOKBOOK
    resource_type = Cookbook

    @classmethod
    def default_scanners(cls) -> list[type[Scanner]]:
        return [CookbookMetadataScanner, ManifestScanner, FilenameScanner]

    def is_resource_root(self, path: Path) -> bool:
        if not path.is_dir() or path.is_symlink():
            return False
        return (path / JSON_METADATA).is_file() or (path / RUBY_METADATA).is_file()
