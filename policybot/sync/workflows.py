"""Inventory of the workflow files a repository currently carries."""

from __future__ import annotations

import logging

from policybot.errors import GatewayError
from policybot.gateway.base import FileContent, RepositoryGateway
from policybot.models import WORKFLOW_DIR, WorkflowFile

logger = logging.getLogger(__name__)


class WorkflowInventory:
    def __init__(self, gateway: RepositoryGateway):
        self.gateway = gateway

    async def scan(self, repo: str) -> list[WorkflowFile]:
        """Return every file under the workflow directory with its decoded content.

        Entries that cannot be read are skipped; a listing failure or an
        undecodable file is raised.
        """
        entries = await self.gateway.get_contents(repo, WORKFLOW_DIR)
        if isinstance(entries, FileContent):
            raise GatewayError(
                "expected a directory", operation="list_workflows", repository=repo, path=WORKFLOW_DIR
            )

        files: list[WorkflowFile] = []
        for entry in entries:
            if entry.type != "file":
                continue
            try:
                contents = await self.gateway.get_contents(repo, f"{WORKFLOW_DIR}/{entry.name}")
            except GatewayError as e:
                logger.debug("Skipping %s in %s: %s", entry.path, repo, e)
                continue
            if not isinstance(contents, FileContent):
                continue
            files.append(WorkflowFile(name=entry.name, path=entry.path, content=contents.decode()))

        return files
