"""GitHub REST adapter for the repository gateway.

All requests go through ``_request``, which maps HTTP failures onto the
gateway error hierarchy and applies the rate-limit retry policy.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Any
from urllib.parse import quote

import httpx

from policybot.config import DEFAULT_API_URL, DEFAULT_BACKOFF_BASE, DEFAULT_TIMEOUT
from policybot.errors import (
    AlreadyExistsError,
    GatewayError,
    NotFoundError,
    RateLimitError,
)
from policybot.gateway.base import BranchRef, ContentEntry, Contents, FileContent, PullRequest
from policybot.gateway.retry import MAX_ATTEMPTS, call_with_retry
from policybot.models import Repository

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
PAGE_SIZE = 100


class GitHubGateway:
    """Repository gateway scoped to one GitHub organization.

    Parameters
    ----------
    org : str
        Organization (or user) that owns the repositories.
    token : str
        Personal access or app token. Requests are anonymous when empty.
    transport : httpx.AsyncBaseTransport | None
        Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        org: str,
        token: str = "",
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        max_attempts: int = MAX_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.org = org
        self.backoff_base = backoff_base
        self.max_attempts = max_attempts

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubGateway:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    async def list_all_repositories(self) -> list[Repository]:
        """List every repository in the organization, sorted by full name.

        Pages are followed through the ``Link: rel="next"`` header until the
        API stops returning one. Each page is retried independently.
        """
        repositories: list[Repository] = []
        url: str | None = f"/orgs/{self.org}/repos"
        params: dict | None = {"per_page": PAGE_SIZE, "sort": "full_name", "type": "all"}

        while url:
            response, items = await self._request_json(
                "GET", url, list, params=params, operation="list_repositories"
            )
            repositories.extend(_repository_from_json(item) for item in items if item)

            next_link = response.links.get("next")
            url = next_link["url"] if next_link else None
            params = None  # The next link already carries the query string.

        return repositories

    async def list_files(self, repo: str, ref: str = "HEAD") -> list[str]:
        """Return the path of every blob in the recursive tree of ``ref``."""
        response, data = await self._request_json(
            "GET",
            f"{self._repo_url(repo)}/git/trees/{quote(ref, safe='')}",
            dict,
            params={"recursive": "1"},
            operation="list_files",
            repository=repo,
            ref=ref,
        )
        tree = data.get("tree", [])
        if not _is_object_list(tree):
            raise GatewayError(
                "unexpected response shape: 'tree' is not a list of entries",
                operation="list_files",
                repository=repo,
                ref=ref,
                status=response.status_code,
            )
        if data.get("truncated"):
            logger.warning("Tree listing for %s/%s was truncated by the API", self.org, repo)
        return [entry["path"] for entry in tree if entry.get("type") == "blob" and entry.get("path")]

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    async def get_contents(self, repo: str, path: str, ref: str | None = None) -> Contents:
        """Read ``path``: a file yields ``FileContent``, a directory a list of entries."""
        _, data = await self._request_json(
            "GET",
            f"{self._repo_url(repo)}/contents/{quote(path)}",
            (dict, list),
            params={"ref": ref} if ref else None,
            operation="get_contents",
            repository=repo,
            ref=ref or "",
            path=path,
        )
        if isinstance(data, list):
            return [
                ContentEntry(
                    name=item.get("name", ""),
                    path=item.get("path", ""),
                    type=item.get("type", ""),
                    sha=item.get("sha", ""),
                )
                for item in data
            ]
        return FileContent(
            path=data.get("path", path),
            sha=data.get("sha", ""),
            raw=data.get("content") or "",
            encoding=data.get("encoding", "base64"),
        )

    async def get_file(self, repo: str, path: str, ref: str) -> tuple[str, str]:
        """Return ``(decoded_text, blob_sha)`` for a file on ``ref``."""
        contents = await self.get_contents(repo, path, ref=ref)
        if not isinstance(contents, FileContent):
            raise GatewayError(
                "path is a directory, expected a file",
                operation="get_file",
                repository=repo,
                ref=ref,
                path=path,
            )
        return contents.decode(), contents.sha

    async def put_file(
        self,
        repo: str,
        path: str,
        branch: str,
        message: str,
        content: str,
        sha: str | None = None,
    ) -> None:
        """Create ``path`` on ``branch``, or update it when the prior blob ``sha`` is given."""
        payload = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha

        await self._request(
            "PUT",
            f"{self._repo_url(repo)}/contents/{quote(path)}",
            json=payload,
            operation="update_file" if sha else "create_file",
            repository=repo,
            ref=branch,
            path=path,
        )

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def get_branch(self, repo: str, branch: str) -> BranchRef:
        _, data = await self._request_json(
            "GET",
            f"{self._repo_url(repo)}/git/ref/heads/{quote(branch)}",
            dict,
            operation="get_branch",
            repository=repo,
            ref=branch,
        )
        target = data.get("object")
        sha = target.get("sha", "") if isinstance(target, dict) else ""
        return BranchRef(name=branch, sha=sha or "")

    async def create_branch(self, repo: str, branch: str, base_sha: str) -> None:
        await self._request(
            "POST",
            f"{self._repo_url(repo)}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": base_sha},
            operation="create_branch",
            repository=repo,
            ref=branch,
        )

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    async def list_pull_requests(
        self, repo: str, head: str | None = None, state: str = "open"
    ) -> list[PullRequest]:
        params = {"state": state}
        if head:
            params["head"] = head
        _, items = await self._request_json(
            "GET",
            f"{self._repo_url(repo)}/pulls",
            list,
            params=params,
            operation="list_pull_requests",
            repository=repo,
            ref=head or "",
        )
        return [_pull_request_from_json(item) for item in items]

    async def find_pull_request(self, repo: str, branch: str) -> PullRequest | None:
        """Return the first open pull request whose head is ``branch``, if any."""
        pulls = await self.list_pull_requests(repo, head=f"{self.org}:{branch}", state="open")
        return pulls[0] if pulls else None

    async def create_pull_request(
        self, repo: str, title: str, body: str, head: str, base: str
    ) -> PullRequest:
        _, data = await self._request_json(
            "POST",
            f"{self._repo_url(repo)}/pulls",
            dict,
            json={"title": title, "body": body, "head": head, "base": base},
            operation="create_pull_request",
            repository=repo,
            ref=head,
        )
        return _pull_request_from_json(data)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _repo_url(self, repo: str) -> str:
        return f"/repos/{self.org}/{repo}"

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        params: dict | None = None,
        json: dict | None = None,
        repository: str = "",
        ref: str = "",
        path: str = "",
    ) -> httpx.Response:
        context = {"operation": operation, "repository": repository, "ref": ref, "path": path}

        async def send() -> httpx.Response:
            logger.debug("%s %s", method, url)
            try:
                response = await self._client.request(method, url, params=params, json=json)
            except httpx.HTTPError as e:
                raise GatewayError(f"{type(e).__name__}: {e}", **context) from e
            _raise_for_status(response, context)
            return response

        return await call_with_retry(
            send,
            operation=operation,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
        )

    async def _request_json(
        self, method: str, url: str, expected: type | tuple[type, ...], operation: str, **kwargs
    ) -> tuple[httpx.Response, Any]:
        """Like ``_request``, but also parse the body and check its top-level shape."""
        response = await self._request(method, url, operation=operation, **kwargs)
        context = {
            "operation": operation,
            "repository": kwargs.get("repository", ""),
            "ref": kwargs.get("ref", ""),
            "path": kwargs.get("path", ""),
        }
        return response, _json(response, expected, context)


def _json(response: httpx.Response, expected: type | tuple[type, ...], context: dict) -> Any:
    """Decode a successful response body, raising ``GatewayError`` when it is unusable.

    ``expected`` is the accepted top-level type(s); a list must hold objects only.
    """
    try:
        data = response.json()
    except ValueError as e:
        raise GatewayError(
            f"response is not valid JSON: {e}", status=response.status_code, **context
        ) from e

    if not isinstance(data, expected) or (isinstance(data, list) and not _is_object_list(data)):
        raise GatewayError(
            f"unexpected response shape: got {type(data).__name__}",
            status=response.status_code,
            **context,
        )
    return data


def _is_object_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


def _raise_for_status(response: httpx.Response, context: dict) -> None:
    status = response.status_code
    if 200 <= status < 300:
        return

    message = _error_message(response)
    headers = response.headers

    if status == 404:
        raise NotFoundError(message, status=status, **context)

    if status in (403, 429) and (
        headers.get("x-ratelimit-remaining") == "0" or "retry-after" in headers
    ):
        raise RateLimitError(message, reset_at=_reset_at(headers), status=status, **context)

    if status == 422 and "already exists" in message.lower():
        raise AlreadyExistsError(message, status=status, **context)

    raise GatewayError(message, status=status, **context)


def _reset_at(headers: httpx.Headers) -> float | None:
    retry_after = headers.get("retry-after")
    if retry_after:
        try:
            return time.time() + float(retry_after)
        except ValueError:
            pass
    reset = headers.get("x-ratelimit-reset")
    if reset:
        try:
            return float(reset)
        except ValueError:
            pass
    return None


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"HTTP {response.status_code}"


def _repository_from_json(data: dict) -> Repository:
    return Repository(
        name=data.get("name", ""),
        full_name=data.get("full_name", ""),
        private=bool(data.get("private", False)),
        archived=bool(data.get("archived", False)),
    )


def _pull_request_from_json(data: dict) -> PullRequest:
    head = data.get("head")
    return PullRequest(
        number=int(data.get("number", 0)),
        url=data.get("html_url", ""),
        head=head.get("ref", "") if isinstance(head, dict) else "",
        state=data.get("state", ""),
        title=data.get("title", ""),
    )
