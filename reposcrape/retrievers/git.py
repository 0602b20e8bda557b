"""Git retriever with reference classification and deterministic working trees."""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Literal

from reposcrape.core.errors import (
    AmbiguousReferenceError,
    CommandFailedError,
    MissingReferenceError,
)
from reposcrape.core.supervisor import run_simple
from reposcrape.repositories.descriptor import RepositoryKind
from reposcrape.retrievers.checkout import CheckoutRetriever

LOGGER = logging.getLogger(__name__)

MINIMUM_GIT_VERSION = (1, 8)
DEFAULT_BRANCH = "master"
REMOTE = "origin"
TAG_DELETE_BATCH = 100
SSH_OPTIONS = (
    "-o StrictHostKeyChecking=no",
    "-o UserKnownHostsFile=/dev/null",
    "-o BatchMode=yes",
)

ReferenceKind = Literal["tag", "remote_branch", "opaque"]


@dataclass(frozen=True, slots=True)
class GitReference:
    name: str
    kind: ReferenceKind
    stale_local_branch: bool = False


def classify_reference(
    name: str,
    *,
    tags: set[str],
    remote_branches: set[str],
    local_branches: set[str],
    default_branch: str,
    allow_self_heal: bool = True,
) -> GitReference:
    """Decide how a requested revision name should be checked out."""
    is_tag = name in tags
    is_remote = name in remote_branches
    is_local = name in local_branches

    if is_tag and is_remote:
        raise AmbiguousReferenceError(f"Ambiguous name is both a remote branch and a tag: {name!r}")
    if is_tag and is_local:
        if name == default_branch or not allow_self_heal:
            raise AmbiguousReferenceError(
                f"Ambiguous name is both a local branch and a tag: {name!r}"
            )
        return GitReference(name, "tag", stale_local_branch=True)
    if is_remote:
        return GitReference(name, "remote_branch")
    if is_tag:
        return GitReference(name, "tag")
    if is_local:
        raise MissingReferenceError(f"Missing remote branch for local branch: {name!r}")
    return GitReference(name, "opaque")


class GitRetriever(CheckoutRetriever):
    """Mirror a git repository, updating with fetch when the checkout exists."""

    kind = RepositoryKind.GIT
    ignorable_paths = frozenset({".git"})

    def __init__(self, *args, allow_self_heal: bool = True, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.allow_self_heal = allow_self_heal
        self._env: dict[str, str] = {}
        self._fetched = False
        self._reference: GitReference | None = None
        self._healed = False

    def available(self) -> bool:
        probe = self.context.capabilities.probe("git", ["git", "--version"], MINIMUM_GIT_VERSION)
        return probe.available

    def exists(self) -> bool:
        return (self.repo_dir / ".git").is_dir()

    @contextmanager
    def session(self) -> Iterator[None]:
        self._fetched = False
        self._reference = None
        self._healed = False
        with tempfile.TemporaryDirectory(prefix="reposcrape-ssh-") as keydir:
            self._env = self._ssh_env(Path(keydir))
            try:
                yield
            finally:
                self._env = {}

    def _ssh_env(self, keydir: Path) -> dict[str, str]:
        options = list(SSH_OPTIONS)
        key = self.repository.first_credential
        if key and "PRIVATE KEY" in key:
            key_path = keydir / "id_key"
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(key.rstrip("\n") + "\n")
            options += ["-o IdentitiesOnly=yes", f"-i {shlex.quote(str(key_path))}"]
        return {
            "GIT_SSH_COMMAND": "ssh " + " ".join(options),
            "GIT_TERMINAL_PROMPT": "0",
        }

    # Commands

    def _git(self, *args: str, cwd: Path | None = None) -> str:
        return self.shell().execute(["git", *args], cwd=cwd, env=self._env)

    def _query(self, *args: str) -> str:
        result = run_simple(
            ["git", *args],
            timeout_seconds=self.context.simple_command_timeout_seconds,
            cwd=self.repo_dir,
            env=self.context.command_env(self._env),
        )
        return result.stdout

    def _rev_parse(self, spec: str) -> str | None:
        try:
            output = self._query("rev-parse", "--verify", "--quiet", f"{spec}^{{commit}}")
        except CommandFailedError:
            return None
        return output.strip() or None

    def _refs(self, prefix: str) -> set[str]:
        output = self._query("for-each-ref", "--format=%(refname)", prefix)
        names = set()
        for line in output.splitlines():
            line = line.strip()
            if line.startswith(prefix + "/"):
                names.add(line[len(prefix) + 1 :])
        return names

    def _delete_tags(self, tags: Iterable[str]) -> None:
        tags = sorted(tags)
        for start in range(0, len(tags), TAG_DELETE_BATCH):
            self._query("tag", "-d", *tags[start : start + TAG_DELETE_BATCH])

    def fetch(self) -> None:
        """Refresh remote-tracking refs once per retrieve, dropping stale local tags first."""
        if self._fetched:
            return
        self._delete_tags(self._refs("refs/tags"))
        self._git("fetch", "--all", "--prune", "--tags", "--quiet")
        self._fetched = True

    def default_branch(self, remote_branches: set[str]) -> str:
        try:
            head = self._query("symbolic-ref", "--quiet", f"refs/remotes/{REMOTE}/HEAD").strip()
        except CommandFailedError:
            head = ""
        prefix = f"refs/remotes/{REMOTE}/"
        if head.startswith(prefix):
            return head[len(prefix) :]
        if DEFAULT_BRANCH not in remote_branches and "main" in remote_branches:
            return "main"
        return DEFAULT_BRANCH

    def reference(self) -> GitReference:
        """Classify the requested revision without touching the working tree."""
        if self._reference is not None:
            return self._reference
        remote_branches = self._refs(f"refs/remotes/{REMOTE}") - {"HEAD"}
        default_branch = self.default_branch(remote_branches)
        name = self.repository.tag or default_branch
        reference = classify_reference(
            name,
            tags=self._refs("refs/tags"),
            remote_branches=remote_branches,
            local_branches=self._refs("refs/heads"),
            default_branch=default_branch,
            allow_self_heal=self.allow_self_heal,
        )
        self._reference = reference
        return reference

    def _heal_local_branch(self, reference: GitReference) -> None:
        """Delete a local branch that shadows a tag; only called once the tree is being replaced."""
        if not reference.stale_local_branch or self._healed:
            return
        self.logger.note_warning(
            f"Deleting obsolete local branch {reference.name!r} that collides with a tag of the same name."
        )
        remote_branches = self._refs(f"refs/remotes/{REMOTE}") - {"HEAD"}
        default_branch = self.default_branch(remote_branches)
        if default_branch in remote_branches:
            remote_default = f"refs/remotes/{REMOTE}/{default_branch}"
            self._git("checkout", "--force", "--quiet", "-B", default_branch, remote_default)
        else:
            self._git("checkout", "--force", "--quiet", default_branch)
        self._git("branch", "-D", reference.name)
        self._healed = True

    def _target_spec(self, reference: GitReference) -> str:
        if reference.kind == "tag":
            return f"refs/tags/{reference.name}"
        if reference.kind == "remote_branch":
            return f"refs/remotes/{REMOTE}/{reference.name}"
        return reference.name

    # State machine hooks

    def remote_differs(self) -> bool:
        self.fetch()
        reference = self.reference()
        if reference.stale_local_branch:
            return True
        target = self._rev_parse(self._target_spec(reference))
        if target is None:
            return True
        return target != self._rev_parse("HEAD")

    def do_update(self) -> None:
        self.fetch()
        reference = self.reference()
        self._git("reset", "--hard", "--quiet")
        self._heal_local_branch(reference)
        self._checkout_reference(reference)

    def do_checkout(self) -> None:
        self._git("clone", "--quiet", self.repository.url, str(self.repo_dir), cwd=self.repo_dir.parent)
        self._fetched = False
        self._reference = None
        self._healed = False
        self.fetch()
        reference = self.reference()
        self._heal_local_branch(reference)
        self._checkout_reference(reference)

    def _checkout_reference(self, reference: GitReference) -> None:
        spec = self._target_spec(reference)
        if reference.kind == "remote_branch":
            self._git("checkout", "--force", "--quiet", "-B", reference.name, spec)
            self._git("reset", "--hard", "--quiet", spec)
        else:
            self._git("-c", "advice.detachedHead=false", "checkout", "--force", "--quiet", spec)
        self._update_submodules()
        self._clean()

    def _update_submodules(self) -> None:
        if not (self.repo_dir / ".gitmodules").is_file():
            return
        self._git("submodule", "sync", "--recursive", "--quiet")
        self._git("submodule", "update", "--init", "--recursive", "--force", "--quiet")

    def _clean(self) -> None:
        self._git("clean", "-ffdx", "--quiet")
        self._git("submodule", "foreach", "--quiet", "--recursive", "git clean -ffdx --quiet")

    def current_revision(self) -> str:
        return self._query("rev-parse", "HEAD").strip()
