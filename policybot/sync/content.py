"""Canonical policy content — fetching it and marking it as bot-managed.

The wrapped form, never the raw fetched form, is what gets compared against
and written to repositories.
"""

from __future__ import annotations

from typing import Protocol

import httpx

from policybot.config import DEFAULT_TIMEOUT
from policybot.errors import ContentFetchError

BEGIN_MARKER = "# DO NOT EDIT: BEGIN\n"
END_MARKER = "# DO NOT EDIT: END\n"

HEADER_TEMPLATE = (
    BEGIN_MARKER
    + "# This snippet has been inserted automatically by policybot, do not edit!\n"
    "# If changes are needed, update the policy {policy_name} at its source.\n"
)


def wrap_content(content: str, policy_name: str) -> str:
    """Wrap canonical content in the managed-file marker block.

    Deterministic: the same content and policy name always give the same bytes.
    """
    return HEADER_TEMPLATE.format(policy_name=policy_name) + content + END_MARKER


class ContentSource(Protocol):
    async def fetch(self, url: str) -> str: ...


class ContentFetcher:
    """Fetch canonical policy content over HTTP(S)."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> ContentFetcher:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, url: str) -> str:
        """Return the body of ``url``. Any non-2xx response is an error."""
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise ContentFetchError(url, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise ContentFetchError(
                url, f"unexpected status code: {response.status_code}", status=response.status_code
            )
        return response.text
