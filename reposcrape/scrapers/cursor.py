"""Resumable depth-first traversal cursor over a mirror directory."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from reposcrape.builders.filesystem import sorted_entries
from reposcrape.core.errors import IntegrityError
from reposcrape.resources.models import ROOT_POSITION


@dataclass(slots=True)
class DirectoryFrame:
    relative: str
    names: list[str] = field(default_factory=list)
    index: int = 0

    def take(self) -> str | None:
        if self.index >= len(self.names):
            return None
        name = self.names[self.index]
        self.index += 1
        return name


def join_position(parent: str, name: str) -> str:
    return name if parent == ROOT_POSITION else posixpath.join(parent, name)


def split_position(position: str) -> list[str]:
    """Validate a position and split it into path components."""
    if position in ("", ROOT_POSITION):
        return []
    if position.startswith("/"):
        raise IntegrityError(f"Position must be relative: {position!r}")
    components = position.split("/")
    if any(part in ("", ".", "..") for part in components):
        raise IntegrityError(f"Invalid position: {position!r}")
    return components


class TraversalCursor:
    """Explicit stack of directory listings; `seek` rebuilds it from a position string."""

    def __init__(self, root: Path, ignorable_paths: Iterable[str] = ()) -> None:
        self.root = Path(root)
        self.ignorable_paths = frozenset(ignorable_paths)
        self._stack: list[DirectoryFrame] = []
        self._pending: str | None = ROOT_POSITION
        self._position = ROOT_POSITION

    def absolute(self, position: str) -> Path:
        return self.root if position == ROOT_POSITION else self.root / position

    def position(self) -> str:
        return self._position

    def _frame(self, relative: str) -> DirectoryFrame:
        entries = sorted_entries(self.absolute(relative), self.ignorable_paths)
        return DirectoryFrame(relative, [entry.name for entry in entries])

    def next_entry(self) -> str | None:
        """Return the next position to examine, or None once the walk is done."""
        if self._pending is not None:
            position, self._pending = self._pending, None
            self._position = position
            return position
        while self._stack:
            frame = self._stack[-1]
            name = frame.take()
            if name is None:
                self._stack.pop()
                continue
            self._position = join_position(frame.relative, name)
            return self._position
        return None

    def descend(self, position: str) -> None:
        self._stack.append(self._frame(position))

    def rewind(self) -> None:
        self._stack = []
        self._pending = ROOT_POSITION
        self._position = ROOT_POSITION

    def seek(self, position: str) -> None:
        """Reposition so the next entry examined is `position`."""
        components = split_position(position)
        self.rewind()
        if not components:
            return
        self._pending = None
        parent = ROOT_POSITION
        for name in components:
            try:
                frame = self._frame(parent)
            except (FileNotFoundError, NotADirectoryError) as exc:
                raise IntegrityError(f"Position {position!r} no longer exists") from exc
            if name not in frame.names:
                raise IntegrityError(f"Position {position!r} no longer exists")
            frame.index = frame.names.index(name) + 1
            self._stack.append(frame)
            parent = join_position(parent, name)
        self._pending = parent
        self._position = parent
