"""Tests for beadherd.adapters.network."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from beadherd.adapters.network import NetworkProbe


@pytest.fixture
def mock_transport(monkeypatch: pytest.MonkeyPatch) -> Callable[[Callable[[httpx.Request], httpx.Response]], None]:
    real_client = httpx.AsyncClient

    def install(handler: Callable[[httpx.Request], httpx.Response]) -> None:
        def factory(**kwargs):  # type: ignore[no-untyped-def]
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", factory)

    return install


@pytest.mark.asyncio
async def test_online_on_success(mock_transport) -> None:  # type: ignore[no-untyped-def]
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(301)

    mock_transport(handler)
    probe = NetworkProbe("https://example.test")
    assert probe.last is None

    reading = await probe.check_online()
    assert reading.online
    assert reading.latency_ms is not None
    assert seen[0].method == "HEAD"
    assert probe.last is reading


@pytest.mark.asyncio
async def test_server_error_is_offline(mock_transport) -> None:  # type: ignore[no-untyped-def]
    mock_transport(lambda request: httpx.Response(503))
    reading = await NetworkProbe("https://example.test").check_online()
    assert not reading.online
    assert reading.error == "HTTP 503"


@pytest.mark.asyncio
async def test_timeout_is_offline(mock_transport) -> None:  # type: ignore[no-untyped-def]
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    mock_transport(handler)
    reading = await NetworkProbe("https://example.test").check_online(timeout=0.5)
    assert not reading.online
    assert reading.error == "timed out after 0.5s"


@pytest.mark.asyncio
async def test_connection_error_is_offline(mock_transport) -> None:  # type: ignore[no-untyped-def]
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    mock_transport(handler)
    reading = await NetworkProbe("https://example.test").check_online()
    assert not reading.online
    assert "name resolution failed" in reading.error
