"""Core data models shared by the drift detector, remediation engine and orchestrator.

Everything here is an immutable snapshot: repositories are fetched per run,
deviations are consumed exactly once, and outcomes are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

WORKFLOW_DIR = ".github/workflows"
BRANCH_PREFIX = "chore/"


class DeviationAction(Enum):
    """What the remediation has to do to the managed workflow file."""

    CREATE = "create"  # Policy matches but the workflow file is absent
    UPDATE = "update"  # Workflow file exists with stale content

    @property
    def verb(self) -> str:
        return "add" if self is DeviationAction.CREATE else "update"


class OutcomeAction(Enum):
    """Terminal state of a successful remediation."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Policy:
    """A declared workflow policy: which repositories need it and where its content lives."""

    name: str
    match_pattern: str
    source_url: str

    @property
    def target_path(self) -> str:
        return f"{WORKFLOW_DIR}/{self.name}.yml"

    @property
    def branch_name(self) -> str:
        return f"{BRANCH_PREFIX}{self.name}"


@dataclass(frozen=True)
class Repository:
    """Read-only snapshot of a hosted repository."""

    name: str
    full_name: str
    private: bool = False
    archived: bool = False


@dataclass(frozen=True)
class Deviation:
    """A repository/policy pair whose managed workflow is missing or stale."""

    repository: Repository
    policy: Policy
    action: DeviationAction
    target_path: str
    expected_source_url: str
    current_content: str = ""  # Unwrapped file content, empty for CREATE

    def describe(self) -> str:
        return f"{self.repository.full_name}: {self.action.value} {self.target_path}"


@dataclass(frozen=True)
class RemediationOutcome:
    """Result of remediating one deviation.

    Exactly one of ``action`` and ``error`` is set.
    """

    deviation: Deviation
    action: OutcomeAction | None = None
    pull_request_url: str = ""
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def summary(self) -> str:
        target = f"{self.deviation.policy.name} in {self.deviation.repository.full_name}"
        if self.error is not None:
            return f"Error: {target} - {self.error}"
        return f"Remediation: {target} - {self.action.value} ({self.pull_request_url})"


@dataclass(frozen=True)
class WorkflowFile:
    """A workflow file as it currently exists in a repository."""

    name: str
    path: str
    content: str
