"""Tests for canonical content fetching and the managed-file wrapper."""

import asyncio

import httpx
import pytest

from policybot.errors import ContentFetchError
from policybot.sync.content import BEGIN_MARKER, END_MARKER, ContentFetcher, wrap_content


def test_wrap_is_deterministic():
    assert wrap_content("a: 1\n", "dockerfile") == wrap_content("a: 1\n", "dockerfile")


def test_wrap_order():
    wrapped = wrap_content("jobs: {}\n", "dockerfile")
    begin = wrapped.index(BEGIN_MARKER)
    name = wrapped.index("dockerfile")
    body = wrapped.index("jobs: {}\n")
    end = wrapped.index(END_MARKER)
    assert begin == 0
    assert begin < name < body < end
    assert wrapped.endswith(END_MARKER)


def test_wrap_differs_by_policy_name():
    assert wrap_content("x\n", "one") != wrap_content("x\n", "two")


def _fetch(handler, url: str) -> str:
    async def go():
        async with ContentFetcher(transport=httpx.MockTransport(handler)) as fetcher:
            return await fetcher.fetch(url)

    return asyncio.run(go())


def test_fetch_returns_body():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url == "https://example.com/ci.yml"
        return httpx.Response(200, text="on: [push]\n")

    assert _fetch(handler, "https://example.com/ci.yml") == "on: [push]\n"


def test_fetch_non_success_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    with pytest.raises(ContentFetchError) as excinfo:
        _fetch(handler, "https://example.com/ci.yml")
    assert excinfo.value.status == 500
    assert "500" in str(excinfo.value)


def test_fetch_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ContentFetchError) as excinfo:
        _fetch(handler, "https://example.com/ci.yml")
    assert excinfo.value.status is None
