from __future__ import annotations

from pathlib import Path

import pytest

from reposcrape.core.config import RetrievalBudget
from reposcrape.core.errors import (
    AmbiguousReferenceError,
    CheckoutFailedError,
    CommandFailedError,
    SizeLimitError,
    ToolUnavailableError,
)
from reposcrape.repositories.descriptor import RepositoryDescriptor, RepositoryKind
from reposcrape.retrievers.checkout import UNCHANGED_WARNING, CheckoutRetriever


class FakeRetriever(CheckoutRetriever):
    kind = RepositoryKind.GIT

    def __init__(
        self,
        *args,
        differs: bool = True,
        update_error: Exception | None = None,
        checkout_error: Exception | None = None,
        tool: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.differs = differs
        self.update_error = update_error
        self.checkout_error = checkout_error
        self.tool = tool
        self.calls: list[str] = []
        self.shells: list[object] = []

    def available(self) -> bool:
        return self.tool

    def exists(self) -> bool:
        return (self.repo_dir / ".fake").is_dir()

    def remote_differs(self) -> bool:
        self.calls.append("remote_differs")
        return self.differs

    def do_update(self) -> None:
        self.calls.append("update")
        self.shells.append(self.shell())
        if self.update_error is not None:
            raise self.update_error
        (self.repo_dir / "updated.txt").write_text("updated", encoding="utf-8")

    def do_checkout(self) -> None:
        self.calls.append("checkout")
        self.shells.append(self.shell())
        (self.repo_dir / ".fake").mkdir()
        (self.repo_dir / "file.txt").write_text("fresh", encoding="utf-8")
        if self.checkout_error is not None:
            raise self.checkout_error

    def current_revision(self) -> str:
        return "rev-1"


def make_retriever(tmp_path: Path, **kwargs) -> FakeRetriever:
    repository = RepositoryDescriptor(kind="git", url="https://example.com/repo.git")
    budget = kwargs.pop("budget", RetrievalBudget())
    return FakeRetriever(repository, basedir=tmp_path, budget=budget, **kwargs)


def seed_mirror(retriever: FakeRetriever, payload: bytes = b"old") -> None:
    retriever.repo_dir.mkdir(parents=True)
    (retriever.repo_dir / ".fake").mkdir()
    (retriever.repo_dir / "file.txt").write_bytes(payload)


def test_fresh_checkout_records_revision(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path)
    assert retriever.retrieve() is True
    assert retriever.calls == ["checkout"]
    assert retriever.repository.resolved_revision == "rev-1"
    assert retriever.repo_dir == tmp_path / retriever.repository.repository_hash / "repo"


def test_unchanged_mirror_is_left_alone(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, differs=False)
    seed_mirror(retriever)
    before = sorted(path.name for path in retriever.repo_dir.iterdir())
    assert retriever.retrieve() is False
    assert retriever.calls == ["remote_differs"]
    assert sorted(path.name for path in retriever.repo_dir.iterdir()) == before
    assert UNCHANGED_WARNING in retriever.logger.warnings


def test_changed_mirror_is_updated_in_place(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path)
    seed_mirror(retriever)
    assert retriever.retrieve() is True
    assert retriever.calls == ["remote_differs", "update"]
    assert (retriever.repo_dir / "updated.txt").exists()


def test_oversized_mirror_goes_straight_to_checkout(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, budget=RetrievalBudget(max_bytes=10))
    seed_mirror(retriever, b"x" * 100)
    assert retriever.retrieve() is True
    assert "update" not in retriever.calls
    assert retriever.calls[-1] == "checkout"
    assert (retriever.repo_dir / "file.txt").read_text(encoding="utf-8") == "fresh"


def test_failed_update_falls_back_to_checkout(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, update_error=CommandFailedError("merge conflict"))
    seed_mirror(retriever)
    (retriever.repo_dir / "stale.txt").write_text("stale", encoding="utf-8")
    assert retriever.retrieve() is True
    assert retriever.calls == ["remote_differs", "update", "checkout"]
    assert not (retriever.repo_dir / "stale.txt").exists()
    assert any("unsuccessful update" in warning for warning in retriever.logger.warnings)


def test_budget_error_during_update_is_not_downgraded(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, update_error=SizeLimitError("too big"))
    seed_mirror(retriever)
    with pytest.raises(SizeLimitError):
        retriever.retrieve()
    assert "checkout" not in retriever.calls
    assert (retriever.repo_dir / "file.txt").exists()


def test_reference_error_during_update_is_fatal(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, update_error=AmbiguousReferenceError("both"))
    seed_mirror(retriever)
    with pytest.raises(AmbiguousReferenceError):
        retriever.retrieve()
    assert "checkout" not in retriever.calls


def test_failed_checkout_removes_partial_mirror(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, checkout_error=CommandFailedError("clone failed"))
    with pytest.raises(CommandFailedError):
        retriever.retrieve()
    assert not retriever.repo_dir.exists()
    assert retriever.exists() is False


def test_unavailable_tool_is_fatal(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, tool=False)
    with pytest.raises(ToolUnavailableError):
        retriever.retrieve()
    assert retriever.calls == []


def test_unexpected_update_failure_falls_back_to_checkout(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, update_error=OSError("index locked"))
    seed_mirror(retriever)
    assert retriever.retrieve() is True
    assert retriever.calls[-1] == "checkout"
    assert any("index locked" in warning for warning in retriever.logger.warnings)


def test_unexpected_checkout_failure_is_wrapped(tmp_path: Path) -> None:
    retriever = make_retriever(tmp_path, checkout_error=OSError("disk full"))
    with pytest.raises(CheckoutFailedError) as excinfo:
        retriever.retrieve()
    assert isinstance(excinfo.value.__cause__, OSError)
    assert not retriever.repo_dir.exists()


def test_one_deadline_covers_the_whole_retrieve(tmp_path: Path) -> None:
    retriever = make_retriever(
        tmp_path,
        budget=RetrievalBudget(max_seconds=600),
        update_error=CommandFailedError("merge conflict"),
    )
    seed_mirror(retriever)
    assert retriever.retrieve() is True
    update_shell, checkout_shell = retriever.shells
    assert update_shell is checkout_shell

    retriever.retrieve()
    assert retriever.shells[-1] is not checkout_shell
