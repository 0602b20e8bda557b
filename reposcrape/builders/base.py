"""Builder protocol and the union combinator."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from reposcrape.core.scrape_logger import ScrapeLogger
from reposcrape.resources.models import Resource


class Builder:
    """Side-effecting visitor run once per discovered resource."""

    def __init__(self, logger: ScrapeLogger | None = None) -> None:
        self.logger = logger or ScrapeLogger()

    def go(self, directory: Path, resource: Resource) -> None:
        pass

    def finish(self) -> None:
        pass


class UnionBuilder(Builder):
    def __init__(self, builders: Sequence[Builder], logger: ScrapeLogger | None = None) -> None:
        super().__init__(logger)
        self.builders = list(builders)

    def go(self, directory: Path, resource: Resource) -> None:
        for builder in self.builders:
            builder.go(directory, resource)

    def finish(self) -> None:
        for builder in self.builders:
            builder.finish()
