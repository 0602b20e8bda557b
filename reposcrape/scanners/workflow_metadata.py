"""Workflow metadata scanner."""

from __future__ import annotations

import json
import posixpath

from reposcrape.core.errors import MetadataError
from reposcrape.resources.models import Resource, Workflow
from reposcrape.scanners.base import ContentProducer, Scanner


class WorkflowMetadataScanner(Scanner):
    """Parse the `.meta` JSON that sits beside a workflow definition."""

    def begin(self, resource: Resource) -> None:
        self._metadata_name = None
        if isinstance(resource, Workflow):
            self._metadata_name = posixpath.basename(str(resource.metadata_path))
        self._content: ContentProducer | None = None

    def notice(self, relative_position: str, content: ContentProducer) -> None:
        if relative_position == self._metadata_name:
            self._content = content

    def notice_dir(self, relative_position: str | None) -> bool:
        return relative_position is None

    def end(self, resource: Resource) -> None:
        with self.logger.operation("metadata_parsing", resource.position):
            if self._content is None:
                raise MetadataError(f"Missing metadata for workflow at {resource.position!r}")
            try:
                resource.metadata = json.loads(self._content())
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                raise MetadataError(
                    f"Invalid metadata JSON for workflow at {resource.position!r}: {exc}"
                ) from exc
