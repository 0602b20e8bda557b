"""Manifest scanners mapping resource-relative paths to content digests."""

from __future__ import annotations

import hashlib
import posixpath

from reposcrape.resources.models import Resource, Workflow
from reposcrape.scanners.base import ContentProducer, Scanner


class ManifestScanner(Scanner):
    """Digest every file beneath the resource root."""

    digest_name = "md5"

    def begin(self, resource: Resource) -> None:
        self._manifest: dict[str, str] = {}

    def notice(self, relative_position: str, content: ContentProducer) -> None:
        digest = hashlib.new(self.digest_name, content(), usedforsecurity=False)
        self._manifest[relative_position] = digest.hexdigest()

    def end(self, resource: Resource) -> None:
        resource.manifest = self._manifest
        self._manifest = {}


class WorkflowManifestScanner(ManifestScanner):
    """Digest only the definition and metadata files of a workflow."""

    digest_name = "sha1"

    def begin(self, resource: Resource) -> None:
        super().begin(resource)
        self._wanted: set[str] = set()
        if isinstance(resource, Workflow):
            self._wanted = {
                posixpath.basename(str(resource.definition_path)),
                posixpath.basename(str(resource.metadata_path)),
            }

    def notice(self, relative_position: str, content: ContentProducer) -> None:
        if relative_position in self._wanted:
            super().notice(relative_position, content)

    def notice_dir(self, relative_position: str | None) -> bool:
        return relative_position is None
