"""Remediation — drive the branch / file / pull request protocol for one deviation.

The policy branch name depends only on the policy name (``chore/<name>``),
which makes remediation idempotent across runs::

    fetch canonical content
    open PR on chore/<name>?
      yes -> compare branch file with wrapped content
               equal   -> skipped
               unequal -> write file -> updated
      no  -> resolve base SHA (main, then master)
             create branch (an existing branch is accepted)
             verify branch, write file, open PR -> created

Any step failure raises ``RemediationError`` naming the step, repository and
branch. Canonical content is fetched again here rather than taken from the
detection pass, so a late remediation never writes stale content.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from policybot.errors import (
    ContentDecodeError,
    ContentFetchError,
    GatewayError,
    NotFoundError,
    RemediationError,
)
from policybot.gateway.base import PullRequest, RepositoryGateway
from policybot.models import Deviation, OutcomeAction, RemediationOutcome
from policybot.sync.content import ContentSource, wrap_content

logger = logging.getLogger(__name__)

BASE_BRANCHES = ("main", "master")
PULL_REQUEST_BASE = "main"

TITLE_TEMPLATE = "chore(gha): {verb} {policy_name} workflow"

BODY_TEMPLATE = """## Policy Bot Automated PR

This PR was automatically created by policybot to ensure compliance.

**Policy:** {policy_name}
**Action:** {verb}
**Target File:** {target_path}

---
*This is an automated PR. Please review before merging.*
"""


def commit_message(verb: str, policy_name: str, target_path: str = "") -> str:
    return TITLE_TEMPLATE.format(verb=verb, policy_name=policy_name, target_path=target_path)


def pull_request_body(verb: str, policy_name: str, target_path: str) -> str:
    return BODY_TEMPLATE.format(verb=verb, policy_name=policy_name, target_path=target_path)


class RemediationEngine:
    """Fixes deviations by opening or amending one pull request per policy."""

    def __init__(self, gateway: RepositoryGateway, content_source: ContentSource):
        self.gateway = gateway
        self.content_source = content_source

    async def remediate(self, deviation: Deviation) -> RemediationOutcome:
        """Bring ``deviation`` to a terminal outcome.

        Raises:
            RemediationError: a step failed. Only this deviation is affected.
        """
        branch = deviation.policy.branch_name

        with self._step("fetch_content", deviation, branch):
            canonical = await self.content_source.fetch(deviation.expected_source_url)
        expected = wrap_content(canonical, deviation.policy.name)

        with self._step("find_pull_request", deviation, branch):
            existing = await self.gateway.find_pull_request(deviation.repository.name, branch)

        if existing is not None:
            return await self._update_existing(deviation, branch, expected, existing)
        return await self._create_new(deviation, branch, expected)

    async def _update_existing(
        self, deviation: Deviation, branch: str, expected: str, pull: PullRequest
    ) -> RemediationOutcome:
        repo = deviation.repository.name

        with self._step("read_branch_file", deviation, branch):
            current, sha = await self._read_file(repo, deviation.target_path, branch)

        if current == expected:
            logger.info("%s already up to date in %s", branch, deviation.repository.full_name)
            return RemediationOutcome(
                deviation=deviation, action=OutcomeAction.SKIPPED, pull_request_url=pull.url
            )

        with self._step("write_file", deviation, branch):
            await self.gateway.put_file(
                repo,
                deviation.target_path,
                branch,
                commit_message("update", deviation.policy.name, deviation.target_path),
                expected,
                sha=sha,
            )

        return RemediationOutcome(
            deviation=deviation, action=OutcomeAction.UPDATED, pull_request_url=pull.url
        )

    async def _create_new(self, deviation: Deviation, branch: str, expected: str) -> RemediationOutcome:
        repo = deviation.repository.name
        verb = deviation.action.verb

        with self._step("resolve_base_branch", deviation, branch):
            base_sha = await self._resolve_base_sha(repo)

        await self._ensure_branch(deviation, branch, base_sha)

        with self._step("read_branch_file", deviation, branch):
            current, sha = await self._read_file(repo, deviation.target_path, branch)

        if current != expected:
            with self._step("write_file", deviation, branch):
                await self.gateway.put_file(
                    repo,
                    deviation.target_path,
                    branch,
                    commit_message(verb, deviation.policy.name, deviation.target_path),
                    expected,
                    sha=sha,
                )

        with self._step("create_pull_request", deviation, branch):
            pull = await self.gateway.create_pull_request(
                repo,
                title=commit_message(verb, deviation.policy.name, deviation.target_path),
                body=pull_request_body(verb, deviation.policy.name, deviation.target_path),
                head=branch,
                base=PULL_REQUEST_BASE,
            )

        logger.info("Opened %s for %s", pull.url, deviation.describe())
        return RemediationOutcome(
            deviation=deviation, action=OutcomeAction.CREATED, pull_request_url=pull.url
        )

    async def _resolve_base_sha(self, repo: str) -> str:
        """Return the head SHA of the first base branch that resolves.

        Only a failed lookup falls through to the next candidate; a branch
        that resolves without a SHA is an error.
        """
        last_error: GatewayError | None = None
        for name in BASE_BRANCHES:
            try:
                ref = await self.gateway.get_branch(repo, name)
            except GatewayError as e:
                last_error = e
                continue
            if not ref.sha:
                raise GatewayError(
                    "default branch SHA is empty", operation="get_branch", repository=repo, ref=name
                )
            return ref.sha
        raise last_error

    async def _ensure_branch(self, deviation: Deviation, branch: str, base_sha: str) -> None:
        repo = deviation.repository.name
        try:
            await self.gateway.create_branch(repo, branch, base_sha)
        except GatewayError as e:
            # The branch may already exist.
            logger.debug("Creating %s in %s failed (%s), checking whether it exists", branch, repo, e)
            with self._step("create_branch", deviation, branch):
                exists = await self._branch_exists(repo, branch)
            if not exists:
                raise RemediationError("create_branch", deviation.repository.full_name, branch, e) from e

        with self._step("verify_branch", deviation, branch):
            await self.gateway.get_branch(repo, branch)

    async def _branch_exists(self, repo: str, branch: str) -> bool:
        try:
            await self.gateway.get_branch(repo, branch)
        except NotFoundError:
            return False
        return True

    async def _read_file(self, repo: str, path: str, ref: str) -> tuple[str, str | None]:
        """Return ``(content, sha)``; a missing file reads as empty with no SHA."""
        try:
            content, sha = await self.gateway.get_file(repo, path, ref)
        except NotFoundError:
            return "", None
        return content, sha or None

    @contextmanager
    def _step(self, operation: str, deviation: Deviation, branch: str) -> Iterator[None]:
        try:
            yield
        except (GatewayError, ContentFetchError, ContentDecodeError) as e:
            raise RemediationError(operation, deviation.repository.full_name, branch, e) from e
