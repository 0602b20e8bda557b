"""Warn about file names that are not printable ASCII."""

from __future__ import annotations

import os

from reposcrape.resources.models import Resource
from reposcrape.scanners.base import ContentProducer, Scanner


def has_unprintable_bytes(relative_position: str) -> bool:
    return any(byte < 0x20 or byte > 0x7E for byte in os.fsencode(relative_position))


class FilenameScanner(Scanner):
    """Record a warning for every path with non-printing or non-ASCII bytes."""

    def begin(self, resource: Resource) -> None:
        self._resource = resource

    def _warn(self, relative_position: str, noun: str) -> None:
        self.logger.note_warning(
            f"Invalid {noun} name {relative_position!r} in {self._resource.position!r}: "
            "names must contain only printable ASCII characters."
        )

    def notice(self, relative_position: str, content: ContentProducer) -> None:
        if has_unprintable_bytes(relative_position):
            self._warn(relative_position, "file")

    def notice_dir(self, relative_position: str | None) -> bool:
        if relative_position is not None and has_unprintable_bytes(relative_position):
            self._warn(relative_position, "directory")
            return False
        return True
