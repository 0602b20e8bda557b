from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import pytest

from reposcrape.core.config import ScraperSettings
from reposcrape.core.context import ExecutionContext
from reposcrape.core.errors import MetadataError
from reposcrape.core.supervisor import ProcessSupervisor
from reposcrape.repositories.descriptor import RepositoryDescriptor
from reposcrape.scanners.cookbook_metadata import ReadOnlyCookbookMetadataScanner
from reposcrape.scanners.manifest import ManifestScanner
from reposcrape.scraper import Scraper

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


def make_source(root: Path, files: dict[str, str]) -> Path:
    root.mkdir()
    git(root, "init", "--quiet")
    for name, text in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    git(root, "add", "-A")
    git(root, "commit", "--quiet", "-m", "initial")
    return root


def make_scraper(tmp_path: Path, kind: str | None = "cookbook") -> Scraper:
    return Scraper(
        kind,
        basedir=tmp_path / "mirrors",
        settings=ScraperSettings(),
        context=ExecutionContext(supervisor=ProcessSupervisor(poll_interval_seconds=0.1)),
    )


@requires_git
def test_single_cookbook_repository(tmp_path: Path) -> None:
    source = make_source(tmp_path / "source", {"metadata.json": json.dumps({"name": "solo"})})
    scraper = make_scraper(tmp_path)
    assert scraper.scrape({"repo_type": "git", "url": str(source)}) is True
    assert [resource.position for resource in scraper.resources] == ["."]
    resource = scraper.resources[0]
    assert "metadata.json" in resource.manifest
    assert resource.metadata == {"name": "solo"}
    assert resource.repository.resolved_revision
    assert scraper.last_changed is True
    assert ".git/HEAD" not in resource.manifest


@requires_git
def test_second_scrape_reports_unchanged(tmp_path: Path) -> None:
    source = make_source(tmp_path / "source", {"metadata.json": json.dumps({"name": "solo"})})
    scraper = make_scraper(tmp_path, kind=None)
    repository = RepositoryDescriptor(kind="git", url=str(source))
    assert scraper.scrape(repository) is True
    assert scraper.scrape(RepositoryDescriptor(kind="git", url=str(source))) is True
    assert scraper.last_changed is False
    assert scraper.warnings


@requires_git
def test_metadata_error_skips_only_that_cookbook(tmp_path: Path) -> None:
    source = make_source(
        tmp_path / "source",
        {
            "a/metadata.json": json.dumps({"name": "a"}),
            "b/metadata.json": "{not json",
            "c/metadata.json": json.dumps({"name": "c"}),
        },
    )
    scraper = make_scraper(tmp_path)
    phases = []
    ok = scraper.scrape(
        RepositoryDescriptor(kind="git", url=str(source)),
        callback=lambda phase, type_, explanation, exc: phases.append((phase, type_)),
    )
    assert ok is False
    assert [resource.position for resource in scraper.resources] == ["a", "c"]
    assert len(scraper.errors) == 1
    assert isinstance(scraper.errors[0].exception, MetadataError)
    assert ("abort", "metadata_parsing") in phases


def test_unreachable_repository_records_error(tmp_path: Path) -> None:
    scraper = make_scraper(tmp_path)
    ok = scraper.scrape(RepositoryDescriptor(kind="git", url=str(tmp_path / "does-not-exist")))
    assert ok is False
    assert scraper.errors
    assert scraper.resources == []


class JsonGenerator:
    def __init__(self) -> None:
        self.positions: list[str] = []

    def generate(self, workspace: Path, cookbook_dir: Path, position: str) -> None:
        self.positions.append(position)
        payload = {"name": position, "version": "0.1.0"}
        (cookbook_dir / "metadata.json").write_text(json.dumps(payload), encoding="utf-8")


@requires_git
def test_generated_metadata_survives_repeat_scrapes(tmp_path: Path) -> None:
    source = make_source(tmp_path / "source", {"apache/metadata.rb": "name 'apache'"})
    generator = JsonGenerator()
    scraper = Scraper(
        "cookbook",
        basedir=tmp_path / "mirrors",
        settings=ScraperSettings(),
        generator=generator,
        context=ExecutionContext(supervisor=ProcessSupervisor(poll_interval_seconds=0.1)),
    )
    repository = RepositoryDescriptor(kind="git", url=str(source))
    assert scraper.scrape(repository) is True
    assert scraper.scrape(RepositoryDescriptor(kind="git", url=str(source))) is True
    assert scraper.errors == []
    assert generator.positions == ["apache", "apache"]
    assert [resource.metadata["name"] for resource in scraper.resources] == ["apache", "apache"]

    reader = Scraper(
        "cookbook",
        basedir=tmp_path / "mirrors",
        settings=ScraperSettings(),
        scanners=[ReadOnlyCookbookMetadataScanner, ManifestScanner],
        context=ExecutionContext(supervisor=ProcessSupervisor(poll_interval_seconds=0.1)),
    )
    assert reader.scrape(RepositoryDescriptor(kind="git", url=str(source))) is True
    assert reader.resources[0].metadata == {"name": "apache", "version": "0.1.0"}
