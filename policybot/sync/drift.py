"""Drift detection — decide which catalog policies a repository is missing or has stale.

For each policy, in catalog order:

1. If no file in the repository matches the policy's pattern, the policy does
   not apply and nothing is read from the remote.
2. If the managed workflow file is absent, the policy has not been adopted
   yet (``CREATE``).
3. If it exists, its content is compared byte-for-byte with the wrapped
   canonical content; a difference means the copy is stale (``UPDATE``).

Any other failure aborts the evaluation of the repository.
"""

from __future__ import annotations

import logging

from policybot.errors import (
    ContentDecodeError,
    ContentFetchError,
    DriftError,
    GatewayError,
    NotFoundError,
    PatternError,
)
from policybot.gateway.base import FileContent, RepositoryGateway
from policybot.models import Deviation, DeviationAction, Policy, Repository
from policybot.sync.content import ContentSource, wrap_content
from policybot.utils.globbing import matches_any

logger = logging.getLogger(__name__)


class DriftDetector:
    """Evaluates repositories against an ordered policy catalog."""

    def __init__(
        self,
        gateway: RepositoryGateway,
        policies: list[Policy],
        content_source: ContentSource,
    ):
        self.gateway = gateway
        self.policies = list(policies)
        self.content_source = content_source

    async def evaluate(self, repository: Repository, repository_files: list[str]) -> list[Deviation]:
        """Return the deviations of ``repository``, in catalog order.

        Args:
            repository: The repository being audited.
            repository_files: Every file path in the repository's default tree.

        Raises:
            DriftError: the repository could not be evaluated (malformed
                pattern, unreadable workflow, undecodable content or failed
                canonical fetch).
        """
        deviations: list[Deviation] = []

        for policy in self.policies:
            deviation = await self._check(repository, repository_files, policy)
            if deviation is not None:
                deviations.append(deviation)

        return deviations

    async def _check(
        self, repository: Repository, repository_files: list[str], policy: Policy
    ) -> Deviation | None:
        try:
            matched = matches_any(policy.match_pattern, repository_files)
        except PatternError as e:
            raise DriftError(repository.full_name, policy.name, f"matching files: {e}") from e

        if not matched:
            return None

        target_path = policy.target_path
        try:
            contents = await self.gateway.get_contents(repository.name, target_path)
        except NotFoundError:
            logger.debug("%s: %s is missing", repository.full_name, target_path)
            return Deviation(
                repository=repository,
                policy=policy,
                action=DeviationAction.CREATE,
                target_path=target_path,
                expected_source_url=policy.source_url,
            )
        except GatewayError as e:
            raise DriftError(
                repository.full_name, policy.name, f"getting workflow {target_path}: {e}"
            ) from e

        if not isinstance(contents, FileContent):
            raise DriftError(
                repository.full_name, policy.name, f"{target_path} is a directory, expected a file"
            )

        try:
            current = contents.decode()
        except ContentDecodeError as e:
            raise DriftError(
                repository.full_name, policy.name, f"decoding workflow content {target_path}: {e}"
            ) from e

        try:
            expected = await self.content_source.fetch(policy.source_url)
        except ContentFetchError as e:
            raise DriftError(
                repository.full_name, policy.name, f"fetching expected content: {e}"
            ) from e

        if current == wrap_content(expected, policy.name):
            return None

        logger.debug("%s: %s is stale", repository.full_name, target_path)
        return Deviation(
            repository=repository,
            policy=policy,
            action=DeviationAction.UPDATE,
            target_path=target_path,
            expected_source_url=policy.source_url,
            current_content=current,
        )
