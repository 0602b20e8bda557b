"""Repository descriptors and their identity hashes."""

from __future__ import annotations

import hashlib
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlparse

from reposcrape.core.errors import RepositoryError

LOGGER = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0"
SCP_LIKE_URL_RE = re.compile(r"^[\w.-]+@[\w.-]+:(?!//)")


class RepositoryKind(str, Enum):
    GIT = "git"
    SVN = "svn"
    DOWNLOAD = "download"


ALLOWED_SCHEMES: dict[RepositoryKind, frozenset[str]] = {
    RepositoryKind.GIT: frozenset({"http", "https", "git", "ssh", "git+ssh", "file"}),
    RepositoryKind.SVN: frozenset({"http", "https", "svn", "svn+ssh", "file"}),
    RepositoryKind.DOWNLOAD: frozenset({"http", "https", "ftp"}),
}


def sha1_hex(*parts: str) -> str:
    """Hash NUL-joined parts into a hex SHA-1 identity."""
    return hashlib.sha1("\0".join(parts).encode("utf-8")).hexdigest()


def useful_part(value: Any) -> str | None:
    """Strip a credential; blank values become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class RepositoryDescriptor:
    kind: RepositoryKind
    url: str
    tag: str = ""
    first_credential: str | None = None
    second_credential: str | None = None
    display_name: str = ""
    resolved_revision: str | None = None

    def __post_init__(self) -> None:
        try:
            self.kind = RepositoryKind(self.kind)
        except ValueError as exc:
            raise RepositoryError(f"Unknown repository kind: {self.kind!r}") from exc
        self.url = (self.url or "").strip()
        if not self.url:
            raise RepositoryError("Repository URL is required.")
        self.tag = (self.tag or "").strip()
        self.first_credential = useful_part(self.first_credential)
        self.second_credential = useful_part(self.second_credential)
        if not self.display_name:
            self.display_name = self.url

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, validate: bool = False) -> RepositoryDescriptor:
        kind = data.get("kind") or data.get("repo_type")
        if kind is None:
            raise RepositoryError("Repository kind is required.")
        descriptor = cls(
            kind=kind,
            url=data.get("url", ""),
            tag=data.get("tag") or "",
            first_credential=data.get("first_credential"),
            second_credential=data.get("second_credential"),
            display_name=data.get("display_name") or "",
        )
        if validate:
            validate_repository_url(descriptor.kind, descriptor.url)
        return descriptor

    @property
    def revision(self) -> str:
        return self.resolved_revision or self.tag

    @property
    def repository_hash(self) -> str:
        """Identity stable across revisions; selects the mirror directory."""
        return sha1_hex(PROTOCOL_VERSION, self.kind.value, self.url)

    @property
    def checkout_hash(self) -> str:
        """Identity that varies with the (resolved) revision."""
        return sha1_hex(PROTOCOL_VERSION, self.kind.value, self.url, self.revision)

    def to_dict(self) -> dict[str, Any]:
        """Serializable view without credentials."""
        return {
            "kind": self.kind.value,
            "url": self.url,
            "tag": self.tag,
            "display_name": self.display_name,
            "resolved_revision": self.resolved_revision,
            "repository_hash": self.repository_hash,
            "checkout_hash": self.checkout_hash,
        }

    def __str__(self) -> str:
        revision = f"@{self.tag}" if self.tag else ""
        return f"{self.kind.value} {self.url}{revision}"


def _is_forbidden_address(address: str) -> bool:
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    return ip.is_loopback or ip.is_private or ip.is_link_local or ip.is_unspecified


def validate_repository_url(
    kind: RepositoryKind | str,
    url: str,
    *,
    resolve_hosts: bool = False,
) -> None:
    """Reject URLs whose scheme or host is not allowed for `kind`."""
    kind = RepositoryKind(kind)
    if kind is RepositoryKind.GIT and SCP_LIKE_URL_RE.match(url):
        host = url.split("@", 1)[1].split(":", 1)[0]
    else:
        parsed = urlparse(url)
        scheme = parsed.scheme.lower()
        if scheme not in ALLOWED_SCHEMES[kind]:
            raise RepositoryError(f"Unsupported URL scheme {scheme!r} for {kind.value} repository: {url}")
        if scheme == "file":
            return
        host = parsed.hostname or ""
    if not host:
        raise RepositoryError(f"Repository URL has no host: {url}")
    if not resolve_hosts:
        return

    try:
        infos = socket.getaddrinfo(host, None)
    except socket.gaierror as exc:
        raise RepositoryError(f"Cannot resolve repository host {host!r}") from exc
    for info in infos:
        address = str(info[4][0])
        if _is_forbidden_address(address):
            raise RepositoryError(f"Repository host {host!r} resolves to a forbidden address {address}")
