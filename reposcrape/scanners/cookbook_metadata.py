"""Cookbook metadata scanners."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable

from reposcrape.core.errors import MetadataError
from reposcrape.resources.models import ROOT_POSITION, Resource
from reposcrape.scanners.base import ContentProducer, ScanContext, Scanner

LOGGER = logging.getLogger(__name__)

JSON_METADATA = "metadata.json"
RUBY_METADATA = "metadata.rb"
UNDEFINED_COOKBOOK_NAME = "undefined"


def _load_metadata(text: bytes, position: str) -> object:
    try:
        return json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MetadataError(f"Invalid metadata JSON for cookbook at {position!r}: {exc}") from exc


class CookbookMetadataScanner(Scanner):
    """Read metadata.json, or generate it from metadata.rb in a jailed copy."""

    def __init__(self, context: ScanContext | None = None) -> None:
        super().__init__(context)
        self._workspace: Path | None = None
        self._read: Callable[[], bytes] | None = None
        self._read_is_json = False

    def begin(self, resource: Resource) -> None:
        self._read = None
        self._read_is_json = False
        self._resource = resource

    def notice(self, relative_position: str, content: ContentProducer) -> None:
        if relative_position == JSON_METADATA:
            self._read = content
            self._read_is_json = True
        elif relative_position == RUBY_METADATA and not self._read_is_json:
            self._read = self.generated_metadata

    def notice_dir(self, relative_position: str | None) -> bool:
        return relative_position is None

    def end(self, resource: Resource) -> None:
        read = self._read
        self._read = None
        self._read_is_json = False
        with self.logger.operation("metadata_parsing", resource.position):
            if read is None:
                raise MetadataError(f"Missing metadata for cookbook at {resource.position!r}")
            metadata = _load_metadata(read(), resource.position)
            resource.metadata = metadata
            if isinstance(metadata, dict) and metadata.get("name") == UNDEFINED_COOKBOOK_NAME:
                self.logger.note_warning(
                    f"Cookbook name at {resource.position!r} is {UNDEFINED_COOKBOOK_NAME!r}; "
                    "set a name in its metadata."
                )

    def freed_path(self, position: str) -> Path:
        if self.context.freed_dir is None:
            raise MetadataError("No freed directory is configured for generated metadata")
        base = Path(self.context.freed_dir)
        if position != ROOT_POSITION:
            base = base / position
        return base / JSON_METADATA

    def workspace(self) -> Path:
        """Per-pass generation workspace, removed by `finish`."""
        if self._workspace is None:
            self._workspace = Path(tempfile.mkdtemp(prefix="reposcrape-metadata-"))
        return self._workspace

    def generated_metadata(self) -> bytes:
        resource = self._resource
        position = resource.position
        freed_path = self.freed_path(position)
        if freed_path.exists():
            raise MetadataError(
                f"Generated metadata already exists at {freed_path}; refusing to overwrite it"
            )
        if self.context.generator is None:
            raise MetadataError(f"No metadata generator is configured for cookbook at {position!r}")

        workspace = self.workspace()
        jailed_name = UNDEFINED_COOKBOOK_NAME if position == ROOT_POSITION else position
        cookbook_dir = workspace / "cookbooks" / jailed_name
        self._copy_jailed(resource.resource_dir, cookbook_dir, position)
        self.context.generator.generate(workspace, cookbook_dir, position)

        generated = cookbook_dir / JSON_METADATA
        if not generated.is_file():
            raise MetadataError(f"Generated JSON file not found for cookbook at {position!r}")
        freed_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(generated, freed_path)

        limit = self.context.settings.freed_file_size_limit
        if freed_path.stat().st_size > limit:
            freed_path.unlink()
            raise MetadataError(
                f"Generated metadata for {position!r} exceeds the size limit of {limit // 1024}KB"
            )
        return freed_path.read_bytes()

    def _copy_jailed(self, source: Path, target: Path, position: str) -> None:
        limit = self.context.settings.jailed_file_size_limit
        ignorable = self.context.ignorable_paths
        if target.exists():
            shutil.rmtree(target)
        target.mkdir(parents=True)
        for root, dirnames, filenames in os.walk(source):
            dirnames[:] = sorted(
                name
                for name in dirnames
                if name not in ignorable and not os.path.islink(os.path.join(root, name))
            )
            relative_root = os.path.relpath(root, source)
            for name in sorted(filenames):
                path = os.path.join(root, name)
                if os.path.islink(path):
                    continue
                relative = name if relative_root == "." else os.path.join(relative_root, name)
                size = os.path.getsize(path)
                if size > limit:
                    if relative == RUBY_METADATA:
                        raise MetadataError(
                            f"Metadata source file at {position!r} is {size} bytes; "
                            f"the limit is {limit // 1024}KB"
                        )
                    self.logger.note_warning(
                        f"Omitted {relative!r} of cookbook at {position!r} from metadata generation: "
                        f"{size} bytes exceeds {limit // 1024}KB"
                    )
                    continue
                destination = target / relative
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(path, destination)

    def finish(self) -> None:
        if self._workspace is not None:
            shutil.rmtree(self._workspace, ignore_errors=True)
            self._workspace = None


class ReadOnlyCookbookMetadataScanner(CookbookMetadataScanner):
    """Reuse metadata generated by an earlier pass instead of generating it."""

    def generated_metadata(self) -> bytes:
        freed_path = self.freed_path(self._resource.position)
        if not freed_path.is_file():
            raise MetadataError(
                f"Expected generated metadata at {freed_path} for cookbook at {self._resource.position!r}"
            )
        return freed_path.read_bytes()
