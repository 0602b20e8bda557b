"""Update-or-checkout state machine shared by version-controlled retrievers."""

from __future__ import annotations

import logging
from abc import abstractmethod
from contextlib import contextmanager
from typing import Iterator

from reposcrape.core.errors import (
    CheckoutFailedError,
    ScraperError,
    ToolUnavailableError,
    UpdateFailedError,
    is_recoverable,
)
from reposcrape.core.supervisor import directory_size
from reposcrape.retrievers.base import Retriever, remove_tree

LOGGER = logging.getLogger(__name__)

UNCHANGED_WARNING = (
    "Skipped updating local directory because the checked out revision "
    "matches the remote reference."
)


class CheckoutRetriever(Retriever):
    """Retriever that keeps a working copy and updates it in place when possible."""

    def retrieve(self) -> bool:
        if not self.available():
            raise ToolUnavailableError(f"{self.kind.value} retriever is unavailable")
        with self.deadline(), self.session():
            changed = self._retrieve()
            self.repository.resolved_revision = self.current_revision()
        return changed

    def _retrieve(self) -> bool:
        updated = False
        explanation = ""
        if self.exists():
            with self.logger.operation("updating", str(self.repo_dir)):
                if not self.remote_differs():
                    self.logger.note_warning(UNCHANGED_WARNING)
                    return False
                if self.size_limit_exceeded():
                    explanation = "switching to checkout because the existing directory exceeds the size limit"
                else:
                    try:
                        self.do_update()
                        updated = True
                    except Exception as exc:  # noqa: BLE001
                        if not is_recoverable(exc):
                            raise
                        failure = exc if isinstance(exc, ScraperError) else UpdateFailedError(str(exc))
                        explanation = f"switching to checkout after unsuccessful update: {failure}"
                if explanation:
                    self.logger.note_warning(explanation)

        if not updated:
            with self.logger.operation("checkout", explanation):
                remove_tree(self.repo_dir)
                self.repo_dir.mkdir(parents=True)
                try:
                    self.do_checkout()
                except ScraperError:
                    remove_tree(self.repo_dir, ignore_errors=True)
                    raise
                except Exception as exc:
                    remove_tree(self.repo_dir, ignore_errors=True)
                    raise CheckoutFailedError(f"Checkout of {self.repository} failed: {exc}") from exc
                except BaseException:
                    remove_tree(self.repo_dir, ignore_errors=True)
                    raise
        return True

    def size_limit_exceeded(self) -> bool:
        """Whether the visible contents of the mirror already exceed the byte budget."""
        limit = self.budget.max_bytes
        if limit is None:
            return False
        return directory_size(self.repo_dir, limit=limit) > limit

    @contextmanager
    def session(self) -> Iterator[None]:
        """Scope per-retrieve resources such as key files; runs inside `deadline()`."""
        yield

    @abstractmethod
    def exists(self) -> bool:
        """Whether the mirror already holds a checkout."""

    def remote_differs(self) -> bool:
        return True

    @abstractmethod
    def do_update(self) -> None:
        ...

    @abstractmethod
    def do_checkout(self) -> None:
        ...

    @abstractmethod
    def current_revision(self) -> str:
        """Concrete revision currently on disk."""
