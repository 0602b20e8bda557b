"""Static table mapping repository kinds to retriever types."""

from __future__ import annotations

from pathlib import Path

from reposcrape.core.config import RetrievalBudget
from reposcrape.core.context import ExecutionContext
from reposcrape.core.scrape_logger import ScrapeLogger
from reposcrape.repositories.descriptor import RepositoryDescriptor, RepositoryKind
from reposcrape.retrievers.base import Retriever
from reposcrape.retrievers.download import DownloadRetriever
from reposcrape.retrievers.git import GitRetriever
from reposcrape.retrievers.svn import SvnRetriever

RETRIEVER_TYPES: dict[RepositoryKind, type[Retriever]] = {
    RepositoryKind.GIT: GitRetriever,
    RepositoryKind.SVN: SvnRetriever,
    RepositoryKind.DOWNLOAD: DownloadRetriever,
}

_missing = set(RepositoryKind) - set(RETRIEVER_TYPES)
if _missing:
    raise RuntimeError(f"No retriever registered for: {sorted(kind.value for kind in _missing)}")


def create_retriever(
    repository: RepositoryDescriptor,
    *,
    basedir: Path,
    budget: RetrievalBudget | None = None,
    logger: ScrapeLogger | None = None,
    context: ExecutionContext | None = None,
    allow_self_heal: bool = True,
) -> Retriever:
    """Build the retriever registered for `repository.kind`."""
    retriever_type = RETRIEVER_TYPES[repository.kind]
    kwargs = {"basedir": basedir, "budget": budget, "logger": logger, "context": context}
    if retriever_type is GitRetriever:
        return GitRetriever(repository, allow_self_heal=allow_self_heal, **kwargs)
    return retriever_type(repository, **kwargs)
