"""Remote repository gateway — the only path from the engine to the hosting API."""

from policybot.gateway.base import (
    BranchRef,
    ContentEntry,
    FileContent,
    PullRequest,
    RepositoryGateway,
)
from policybot.gateway.github import GitHubGateway

__all__ = [
    "BranchRef",
    "ContentEntry",
    "FileContent",
    "GitHubGateway",
    "PullRequest",
    "RepositoryGateway",
]
