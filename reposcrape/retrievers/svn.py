"""Subversion retriever."""

from __future__ import annotations

import logging
import re

from reposcrape.core.errors import MissingReferenceError, RetrieverError
from reposcrape.repositories.descriptor import RepositoryKind
from reposcrape.retrievers.checkout import CheckoutRetriever

LOGGER = logging.getLogger(__name__)

MINIMUM_SVN_VERSION = (1, 4)
TRUST_SERVER_CERT_VERSION = (1, 6)
SVN_REVISION_RE = re.compile(r"^(HEAD|\d+|\{[0-9:T+\-]+\})$")
SVN_LOG_RE = re.compile(r"^r(\d+)", re.MULTILINE)


class SvnRetriever(CheckoutRetriever):
    """Mirror a Subversion working copy at a given revision."""

    kind = RepositoryKind.SVN
    ignorable_paths = frozenset({".svn"})

    def available(self) -> bool:
        probe = self.context.capabilities.probe(
            "svn", ["svn", "--version", "--quiet"], MINIMUM_SVN_VERSION
        )
        return probe.available

    def exists(self) -> bool:
        return (self.repo_dir / ".svn").is_dir()

    @property
    def revision(self) -> str:
        tag = self.repository.tag or "HEAD"
        if not SVN_REVISION_RE.match(tag):
            raise MissingReferenceError(f"Invalid svn revision: {tag!r}")
        return tag

    def svn_arguments(self) -> list[str]:
        probe = self.context.capabilities.probe(
            "svn", ["svn", "--version", "--quiet"], MINIMUM_SVN_VERSION
        )
        args = ["--no-auth-cache", "--non-interactive"]
        if probe.version is not None and probe.version >= TRUST_SERVER_CERT_VERSION:
            args.append("--trust-server-cert")
        if self.repository.first_credential and self.repository.second_credential:
            args += [
                "--username",
                self.repository.first_credential,
                "--password",
                self.repository.second_credential,
            ]
        return args

    def _svn(self, *args: str) -> None:
        self.shell().execute(["svn", *args, *self.svn_arguments()])

    def _svn_output(self, *args: str) -> str:
        return self.shell().output_for(["svn", *args, *self.svn_arguments()])

    def do_checkout(self) -> None:
        args = ["checkout", self.repository.url, str(self.repo_dir)]
        if self.repository.tag:
            args += ["--revision", self.revision]
        self._svn(*args, "--force")

    def do_update(self) -> None:
        self._svn("update", "--revision", self.revision)

    def current_revision(self) -> str:
        output = self._svn_output("log", "--limit", "1")
        match = SVN_LOG_RE.search(output)
        if not match:
            raise RetrieverError(f"Could not determine svn revision from log output: {output[:200]!r}")
        return match.group(1)
