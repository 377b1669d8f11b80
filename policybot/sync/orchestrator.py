"""Fleet orchestration — audit and remediate every active repository of an organization.

Failure isolation: only the fleet-wide repository listing can fail a run. A
repository whose files cannot be listed or evaluated is recorded and skipped;
a deviation whose remediation fails is recorded as a failed outcome. Task
cancellation and deadlines are never absorbed and always abort the run.
"""

from __future__ import annotations

import asyncio
import logging

from policybot.errors import DriftError, GatewayError, RemediationError
from policybot.gateway.base import RepositoryGateway
from policybot.models import Deviation, RemediationOutcome, Repository
from policybot.sync.drift import DriftDetector
from policybot.sync.remediation import RemediationEngine
from policybot.sync.report import RepositoryFailure, RepositoryResult, RunReport, now_iso

logger = logging.getLogger(__name__)


class FleetOrchestrator:
    """Runs the drift detector and remediation engine over the whole fleet.

    Repositories are processed in listing order. With ``concurrency`` above
    one, up to that many repositories are processed at once; results are
    still reported in listing order.
    """

    def __init__(
        self,
        gateway: RepositoryGateway,
        detector: DriftDetector,
        engine: RemediationEngine | None = None,
        concurrency: int = 1,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.gateway = gateway
        self.detector = detector
        self.engine = engine
        self.concurrency = concurrency

    async def run(self) -> list[RemediationOutcome]:
        """Detect and remediate drift; return one outcome per deviation found."""
        report = await self.run_report()
        return report.outcomes

    async def audit(self) -> list[Deviation]:
        """Detect drift without changing anything; return the deviations found."""
        report = await self.audit_report()
        return report.deviations

    async def run_report(self) -> RunReport:
        if self.engine is None:
            raise ValueError("a remediation engine is required to remediate")
        return await self._sweep(remediate=True)

    async def audit_report(self) -> RunReport:
        return await self._sweep(remediate=False)

    async def _sweep(self, remediate: bool) -> RunReport:
        started_at = now_iso()

        # Fleet-wide prerequisite: a failure here aborts the run.
        repositories = await self.gateway.list_all_repositories()
        active = [r for r in repositories if not r.archived]
        logger.info(
            "Checking %d repositories (%d archived skipped)",
            len(active), len(repositories) - len(active),
        )

        if self.concurrency == 1:
            results = [await self._process(r, remediate) for r in active]
        else:
            semaphore = asyncio.Semaphore(self.concurrency)

            async def bounded(repository: Repository) -> RepositoryResult:
                async with semaphore:
                    return await self._process(repository, remediate)

            results = list(await asyncio.gather(*(bounded(r) for r in active)))

        return RunReport.from_results(results, started_at=started_at)

    async def _process(self, repository: Repository, remediate: bool) -> RepositoryResult:
        result = RepositoryResult(repository=repository)

        try:
            files = await self.gateway.list_files(repository.name)
        except GatewayError as e:
            logger.warning("Could not list files for %s: %s", repository.full_name, e)
            result.failure = RepositoryFailure(repository, "list_files", e)
            return result

        try:
            result.deviations = await self.detector.evaluate(repository, files)
        except DriftError as e:
            logger.warning("Could not check policies for %s: %s", repository.full_name, e)
            result.failure = RepositoryFailure(repository, "evaluate", e)
            return result

        if not remediate:
            for deviation in result.deviations:
                logger.info("Drift: %s", deviation.describe())
            return result

        for deviation in result.deviations:
            result.outcomes.append(await self._remediate(deviation))
        return result

    async def _remediate(self, deviation: Deviation) -> RemediationOutcome:
        try:
            outcome = await self.engine.remediate(deviation)
        except RemediationError as e:
            logger.warning("Remediation failed: %s", e)
            return RemediationOutcome(deviation=deviation, error=e)

        logger.info("%s", outcome.summary())
        return outcome
