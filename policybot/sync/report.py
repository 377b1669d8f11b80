"""Reports of what a fleet run found and did."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from policybot.models import Deviation, RemediationOutcome, Repository


@dataclass(frozen=True)
class RepositoryFailure:
    """A repository that was skipped because listing or evaluating it failed."""

    repository: Repository
    stage: str  # list_files | evaluate
    error: Exception


@dataclass
class RepositoryResult:
    """Everything one repository contributed to a run.

    Either ``failure`` is set, or ``deviations`` (and, when remediating,
    ``outcomes``) hold the repository's results in discovery order.
    """

    repository: Repository
    deviations: list[Deviation] = field(default_factory=list)
    outcomes: list[RemediationOutcome] = field(default_factory=list)
    failure: RepositoryFailure | None = None


@dataclass
class RunReport:
    """Aggregated result of one fleet run."""

    started_at: str = ""
    finished_at: str = ""
    repositories_checked: int = 0
    deviations: list[Deviation] = field(default_factory=list)
    outcomes: list[RemediationOutcome] = field(default_factory=list)
    failures: list[RepositoryFailure] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[RepositoryResult], started_at: str) -> RunReport:
        report = cls(started_at=started_at, repositories_checked=len(results))
        for result in results:
            report.deviations.extend(result.deviations)
            report.outcomes.extend(result.outcomes)
            if result.failure is not None:
                report.failures.append(result.failure)
        report.finished_at = now_iso()
        return report

    @property
    def failed_outcomes(self) -> list[RemediationOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def has_failures(self) -> bool:
        return bool(self.failures or self.failed_outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "repositories_checked": self.repositories_checked,
            "deviations": [_deviation_to_dict(d) for d in self.deviations],
            "outcomes": [
                {
                    **_deviation_to_dict(o.deviation),
                    "result": o.action.value if o.action else "failed",
                    "pull_request_url": o.pull_request_url,
                    "error": str(o.error) if o.error else "",
                }
                for o in self.outcomes
            ],
            "failures": [
                {
                    "repository": f.repository.full_name,
                    "stage": f.stage,
                    "error": str(f.error),
                }
                for f in self.failures
            ],
        }


def write_report(report: RunReport, path: str | Path) -> Path:
    """Write ``report`` as indented JSON and return the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), indent=2) + "\n", encoding="utf-8")
    return path


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _deviation_to_dict(deviation: Deviation) -> dict[str, str]:
    return {
        "repository": deviation.repository.full_name,
        "policy": deviation.policy.name,
        "action": deviation.action.value,
        "target_path": deviation.target_path,
    }
