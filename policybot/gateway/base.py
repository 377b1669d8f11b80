"""The remote repository gateway contract.

The engine only ever talks to a ``RepositoryGateway``; the GitHub adapter is
one implementation and tests substitute an in-memory one.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Protocol, Union

from policybot.errors import ContentDecodeError
from policybot.models import Repository


@dataclass(frozen=True)
class FileContent:
    """A file as returned by the contents API, still in its transfer encoding."""

    path: str
    sha: str
    raw: str
    encoding: str = "base64"

    def decode(self) -> str:
        """Return the file's text content."""
        if self.encoding in ("", "utf-8"):
            return self.raw
        if self.encoding != "base64":
            raise ContentDecodeError(f"{self.path}: unsupported encoding {self.encoding!r}")
        try:
            return base64.b64decode(self.raw).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ContentDecodeError(f"{self.path}: {e}") from e

    @classmethod
    def from_text(cls, path: str, sha: str, text: str) -> FileContent:
        return cls(path=path, sha=sha, raw=base64.b64encode(text.encode("utf-8")).decode("ascii"))


@dataclass(frozen=True)
class ContentEntry:
    """One entry of a directory listing."""

    name: str
    path: str
    type: str  # file | dir | symlink | submodule
    sha: str = ""


Contents = Union[FileContent, list[ContentEntry]]


@dataclass(frozen=True)
class BranchRef:
    name: str
    sha: str


@dataclass(frozen=True)
class PullRequest:
    number: int
    url: str
    head: str
    state: str = "open"
    title: str = ""


class RepositoryGateway(Protocol):
    """Operations the engine needs from a repository-hosting service.

    Every method is a suspension point and must honor task cancellation.
    Missing objects raise ``NotFoundError``; other failures raise
    ``GatewayError`` subclasses.
    """

    async def list_all_repositories(self) -> list[Repository]: ...

    async def get_contents(self, repo: str, path: str, ref: str | None = None) -> Contents: ...

    async def list_files(self, repo: str, ref: str = "HEAD") -> list[str]: ...

    async def get_branch(self, repo: str, branch: str) -> BranchRef: ...

    async def create_branch(self, repo: str, branch: str, base_sha: str) -> None: ...

    async def get_file(self, repo: str, path: str, ref: str) -> tuple[str, str]: ...

    async def put_file(
        self,
        repo: str,
        path: str,
        branch: str,
        message: str,
        content: str,
        sha: str | None = None,
    ) -> None: ...

    async def list_pull_requests(
        self, repo: str, head: str | None = None, state: str = "open"
    ) -> list[PullRequest]: ...

    async def find_pull_request(self, repo: str, branch: str) -> PullRequest | None: ...

    async def create_pull_request(
        self, repo: str, title: str, body: str, head: str, base: str
    ) -> PullRequest: ...
