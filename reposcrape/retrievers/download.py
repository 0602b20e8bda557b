"""Archive retriever: download with curl, then unpack with tar."""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from reposcrape.core.errors import ToolUnavailableError
from reposcrape.repositories.descriptor import RepositoryKind
from reposcrape.retrievers.base import Retriever, remove_tree

LOGGER = logging.getLogger(__name__)

PACKAGE_FILENAME = "package"
FINGERPRINT_PREFIX_BYTES = 4096
TAR_FILTERS = {
    ".gz": "z",
    ".tgz": "z",
    ".bz2": "j",
    ".tbz": "j",
    ".tbz2": "j",
    ".xz": "J",
    ".txz": "J",
}


def content_fingerprint(path: Path, prefix_bytes: int = FINGERPRINT_PREFIX_BYTES) -> str:
    """SHA-1 of the first `prefix_bytes` of a file."""
    with open(path, "rb") as handle:
        return hashlib.sha1(handle.read(prefix_bytes)).hexdigest()


def tar_filter_for(url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return TAR_FILTERS.get(suffix, "")


def _curl_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class DownloadRetriever(Retriever):
    """Fetch an archive; there is no incremental path."""

    kind = RepositoryKind.DOWNLOAD

    def available(self) -> bool:
        probes = self.context.capabilities
        curl = probes.probe("curl", ["curl", "--version"])
        tar = probes.probe("tar", ["tar", "--version"])
        return curl.available and tar.available

    @property
    def package_path(self) -> Path:
        return self.workdir / PACKAGE_FILENAME

    def retrieve(self) -> bool:
        if not self.available():
            raise ToolUnavailableError("download retriever is unavailable (curl and tar are required)")
        remove_tree(self.repo_dir)
        remove_tree(self.package_path)
        self.repo_dir.mkdir(parents=True)
        self.repository.resolved_revision = None
        try:
            with self.deadline() as shell:
                with self.logger.operation("downloading", self.repository.url):
                    self._download()
                fingerprint = content_fingerprint(self.package_path)
                with self.logger.operation("unpacking", str(self.repo_dir)):
                    flags = f"x{tar_filter_for(self.repository.url)}f"
                    shell.execute(["tar", flags, str(self.package_path)])
            self.repository.resolved_revision = fingerprint
        except BaseException:
            remove_tree(self.repo_dir, ignore_errors=True)
            raise
        finally:
            remove_tree(self.package_path, ignore_errors=True)
        return True

    def _download(self) -> None:
        command = [
            "curl",
            "--silent",
            "--show-error",
            "--location",
            "--fail",
            "--location-trusted",
            "-o",
            str(self.package_path),
        ]
        first = self.repository.first_credential
        second = self.repository.second_credential
        with tempfile.TemporaryDirectory(prefix="reposcrape-curl-") as configdir:
            if first and second:
                config_path = Path(configdir) / "curlrc"
                fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(f"user = {_curl_quote(f'{first}:{second}')}\n")
                command += ["--config", str(config_path)]
            command.append(self.repository.url)
            self.shell().execute(command, cwd=self.workdir, watch_directory=self.workdir)
