"""Resources discovered inside a retrieved repository."""

from __future__ import annotations

import hashlib
import json
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

from reposcrape.repositories.descriptor import PROTOCOL_VERSION, RepositoryDescriptor, sha1_hex

ROOT_POSITION = "."


class ResourceKind(str, Enum):
    COOKBOOK = "cookbook"
    WORKFLOW = "workflow"


@dataclass(slots=True, eq=False)
class Resource:
    repository: RepositoryDescriptor
    position: str
    repo_dir: Path
    metadata: Any = None
    manifest: dict[str, str] = field(default_factory=dict)

    kind: ClassVar[ResourceKind]

    @property
    def resource_dir(self) -> Path:
        if self.position == ROOT_POSITION:
            return self.repo_dir
        return self.repo_dir / self.position

    def resource_hash(self) -> str:
        return sha1_hex(PROTOCOL_VERSION, self.repository.checkout_hash, self.position)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "repository": self.repository.to_dict(),
            "position": self.position,
            "resource_hash": self.resource_hash(),
            "metadata": self.metadata,
            "manifest": dict(self.manifest),
        }


@dataclass(slots=True, eq=False)
class Cookbook(Resource):
    kind: ClassVar[ResourceKind] = ResourceKind.COOKBOOK

    def manifest_json(self) -> str:
        """Canonical manifest JSON; key order never depends on traversal order."""
        return json.dumps({"manifest": self.manifest}, sort_keys=True, separators=(",", ":"))

    def resource_hash(self) -> str:
        return hashlib.md5(self.manifest_json().encode("utf-8"), usedforsecurity=False).hexdigest()


@dataclass(slots=True, eq=False)
class Workflow(Resource):
    """Position is the relative path of the `.def` file."""

    kind: ClassVar[ResourceKind] = ResourceKind.WORKFLOW

    DEFINITION_SUFFIX: ClassVar[str] = ".def"
    METADATA_SUFFIX: ClassVar[str] = ".meta"

    @property
    def resource_dir(self) -> Path:
        parent = posixpath.dirname(self.position)
        return self.repo_dir / parent if parent else self.repo_dir

    @property
    def definition_path(self) -> Path:
        return self.repo_dir / self.position

    @property
    def metadata_path(self) -> Path:
        return self.definition_path.with_suffix(self.METADATA_SUFFIX)
