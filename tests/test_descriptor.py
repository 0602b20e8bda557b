from __future__ import annotations

import pytest

from reposcrape.core.config import RetrievalBudget, load_settings
from reposcrape.core.errors import RepositoryError
from reposcrape.core.scrape_logger import ScrapeLogger
from reposcrape.repositories.descriptor import (
    RepositoryDescriptor,
    RepositoryKind,
    validate_repository_url,
)


def test_hashes_ignore_credentials() -> None:
    plain = RepositoryDescriptor(kind="git", url="https://example.com/repo.git", tag="v1")
    secret = RepositoryDescriptor(
        kind="git",
        url="https://example.com/repo.git",
        tag="v1",
        first_credential="user",
        second_credential="hunter2",
    )
    assert plain.repository_hash == secret.repository_hash
    assert plain.checkout_hash == secret.checkout_hash


def test_repository_hash_is_stable_across_revisions() -> None:
    first = RepositoryDescriptor(kind="git", url="https://example.com/repo.git", tag="v1")
    second = RepositoryDescriptor(kind="git", url="https://example.com/repo.git", tag="v2")
    assert first.repository_hash == second.repository_hash
    assert first.checkout_hash != second.checkout_hash


def test_resolved_revision_changes_checkout_hash() -> None:
    descriptor = RepositoryDescriptor(kind="git", url="https://example.com/repo.git", tag="main")
    before = descriptor.checkout_hash
    descriptor.resolved_revision = "a" * 40
    assert descriptor.checkout_hash != before
    assert descriptor.revision == "a" * 40


def test_blank_credentials_are_dropped() -> None:
    descriptor = RepositoryDescriptor(kind="svn", url="svn://example.com/repo", first_credential="  ", second_credential=" pw ")
    assert descriptor.first_credential is None
    assert descriptor.second_credential == "pw"
    assert "pw" not in str(descriptor)


def test_from_dict_accepts_repo_type() -> None:
    descriptor = RepositoryDescriptor.from_dict({"repo_type": "download", "url": "https://example.com/a.tgz"})
    assert descriptor.kind is RepositoryKind.DOWNLOAD
    assert descriptor.tag == ""


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(RepositoryError):
        RepositoryDescriptor(kind="cvs", url="https://example.com/repo")


def test_url_validation_by_kind() -> None:
    validate_repository_url("git", "git@github.com:acme/repo.git")
    validate_repository_url("svn", "svn+ssh://example.com/repo")
    validate_repository_url("download", "https://example.com/a.tgz")
    with pytest.raises(RepositoryError):
        validate_repository_url("download", "file:///etc/passwd")
    with pytest.raises(RepositoryError):
        validate_repository_url("git", "javascript:alert(1)")


def test_url_validation_rejects_loopback_hosts() -> None:
    with pytest.raises(RepositoryError):
        validate_repository_url("git", "https://127.0.0.1/repo.git", resolve_hosts=True)


def test_budget_negative_means_unlimited() -> None:
    budget = RetrievalBudget(max_bytes=-1, max_seconds=-5)
    assert budget.max_bytes is None
    assert budget.max_seconds is None
    assert budget.unlimited


def test_load_settings_from_mapping() -> None:
    settings = load_settings(
        {
            "REPO_SCRAPER_MAX_BYTES": "2048",
            "REPO_SCRAPER_MAX_SECONDS": "-1",
            "REPO_SCRAPER_METADATA_COMMAND": "knife cookbook metadata",
            "REPO_SCRAPER_ALLOW_BRANCH_SELF_HEAL": "false",
        }
    )
    assert settings.max_bytes == 2048
    assert settings.max_seconds is None
    assert settings.metadata_command == ["knife", "cookbook", "metadata"]
    assert settings.allow_branch_self_heal is False
    assert settings.budget() == RetrievalBudget(max_bytes=2048)


def test_scrape_logger_records_innermost_abort_only() -> None:
    phases = []
    logger = ScrapeLogger(callback=lambda phase, type_, explanation, exc: phases.append((phase, type_)))
    with pytest.raises(ValueError):
        with logger.operation("outer"):
            with logger.operation("inner", "detail"):
                raise ValueError("bad")
    assert len(logger.errors) == 1
    assert logger.errors[0].phase == "inner"
    assert isinstance(logger.errors[0].exception, ValueError)
    assert phases == [("begin", "outer"), ("begin", "inner"), ("abort", "inner"), ("abort", "outer")]

    logger.note_warning("careful")
    assert logger.warnings == ["careful"]
