"""Shared fixtures: an in-memory repository gateway and content source."""

from __future__ import annotations

import pytest

from policybot.errors import AlreadyExistsError, ContentFetchError, GatewayError, NotFoundError
from policybot.gateway.base import BranchRef, ContentEntry, FileContent, PullRequest
from policybot.models import Policy, Repository

SOURCE_URL = "https://example.com/policies/dockerfile.yml"
CANONICAL = "name: dockerfile\non: [push]\n"


class FakeGateway:
    """In-memory stand-in for ``RepositoryGateway``.

    ``files`` maps ``(repo, ref, path)`` to text; ref ``None`` is the default
    branch. ``branches`` maps ``(repo, branch)`` to a commit SHA. Every call is
    appended to ``calls`` and ``fail`` maps an operation name to the exception
    it should raise.
    """

    def __init__(self, org: str = "acme"):
        self.org = org
        self.repositories: list[Repository] = []
        self.trees: dict[str, list[str]] = {}
        self.files: dict[tuple[str, str | None, str], str] = {}
        self.branches: dict[tuple[str, str], str] = {}
        self.pulls: dict[str, list[PullRequest]] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self.writes: list[dict] = []

    def _enter(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        if operation in self.fail:
            raise self.fail[operation]

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def list_all_repositories(self) -> list[Repository]:
        self._enter("list_all_repositories")
        return list(self.repositories)

    async def list_files(self, repo: str, ref: str = "HEAD") -> list[str]:
        self._enter("list_files", repo)
        if repo not in self.trees:
            raise GatewayError("Git Repository is empty.", operation="list_files", repository=repo, status=409)
        return list(self.trees[repo])

    async def get_contents(self, repo: str, path: str, ref: str | None = None):
        self._enter("get_contents", repo, path, ref)
        key = (repo, ref, path)
        if key in self.files:
            return FileContent.from_text(path, f"sha-{path}-{ref}", self.files[key])
        prefix = path.rstrip("/") + "/"
        entries = [
            ContentEntry(name=p[len(prefix):], path=p, type="file", sha=f"sha-{p}")
            for (r, f_ref, p) in self.files
            if r == repo and f_ref == ref and p.startswith(prefix) and "/" not in p[len(prefix):]
        ]
        if entries:
            return entries
        raise NotFoundError("Not Found", operation="get_contents", repository=repo, path=path, status=404)

    async def get_file(self, repo: str, path: str, ref: str) -> tuple[str, str]:
        self._enter("get_file", repo, path, ref)
        key = (repo, ref, path)
        if key not in self.files:
            raise NotFoundError("Not Found", operation="get_file", repository=repo, ref=ref, path=path)
        return self.files[key], f"sha-{path}-{ref}"

    async def put_file(self, repo, path, branch, message, content, sha=None) -> None:
        self._enter("put_file", repo, path, branch)
        self.writes.append(
            {"repo": repo, "path": path, "branch": branch, "message": message, "content": content, "sha": sha}
        )
        self.files[(repo, branch, path)] = content

    async def get_branch(self, repo: str, branch: str) -> BranchRef:
        self._enter("get_branch", repo, branch)
        if (repo, branch) not in self.branches:
            raise NotFoundError("Not Found", operation="get_branch", repository=repo, ref=branch)
        return BranchRef(name=branch, sha=self.branches[(repo, branch)])

    async def create_branch(self, repo: str, branch: str, base_sha: str) -> None:
        self._enter("create_branch", repo, branch, base_sha)
        if (repo, branch) in self.branches:
            raise AlreadyExistsError("Reference already exists", operation="create_branch", repository=repo)
        self.branches[(repo, branch)] = base_sha
        # The new branch starts from the default branch's files.
        for (r, ref, path), text in list(self.files.items()):
            if r == repo and ref is None:
                self.files[(repo, branch, path)] = text

    async def list_pull_requests(self, repo, head=None, state="open") -> list[PullRequest]:
        self._enter("list_pull_requests", repo, head)
        return [p for p in self.pulls.get(repo, []) if head is None or f"{self.org}:{p.head}" == head]

    async def find_pull_request(self, repo: str, branch: str) -> PullRequest | None:
        self._enter("find_pull_request", repo, branch)
        for pull in self.pulls.get(repo, []):
            if pull.head == branch and pull.state == "open":
                return pull
        return None

    async def create_pull_request(self, repo, title, body, head, base) -> PullRequest:
        self._enter("create_pull_request", repo, head, base)
        pulls = self.pulls.setdefault(repo, [])
        pull = PullRequest(
            number=len(pulls) + 1,
            url=f"https://github.com/{self.org}/{repo}/pull/{len(pulls) + 1}",
            head=head,
            title=title,
        )
        pulls.append(pull)
        return pull


class FakeContentSource:
    def __init__(self, sources: dict[str, str] | None = None):
        self.sources = dict(sources or {})
        self.fetched: list[str] = []

    async def fetch(self, url: str) -> str:
        self.fetched.append(url)
        if url not in self.sources:
            raise ContentFetchError(url, "unexpected status code: 404", status=404)
        return self.sources[url]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def content_source() -> FakeContentSource:
    return FakeContentSource({SOURCE_URL: CANONICAL})


@pytest.fixture
def dockerfile_policy() -> Policy:
    return Policy(name="dockerfile", match_pattern="**/Dockerfile*", source_url=SOURCE_URL)


@pytest.fixture
def repository() -> Repository:
    return Repository(name="api", full_name="acme/api")


@pytest.fixture
def canonical() -> str:
    return CANONICAL
