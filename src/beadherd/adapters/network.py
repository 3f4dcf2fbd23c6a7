"""Network reachability probe."""

from __future__ import annotations

import time

import httpx

from beadherd.protocol.models import NetworkReading


class NetworkProbe:
    """HEAD request against a well-known host; any 2xx/3xx means online."""

    def __init__(self, url: str = "https://github.com", *, timeout: float = 5.0) -> None:
        self._url = url
        self._timeout = timeout
        self._last: NetworkReading | None = None

    @property
    def last(self) -> NetworkReading | None:
        """Most recent reading, or ``None`` before the first probe."""
        return self._last

    async def check_online(self, timeout: float | None = None) -> NetworkReading:
        limit = self._timeout if timeout is None else timeout
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=limit, follow_redirects=False) as client:
                resp = await client.head(self._url)
        except httpx.TimeoutException:
            reading = NetworkReading(online=False, error=f"timed out after {limit}s")
        except httpx.HTTPError as exc:
            reading = NetworkReading(online=False, error=str(exc) or type(exc).__name__)
        else:
            latency = (time.monotonic() - start) * 1000.0
            online = 200 <= resp.status_code < 400
            reading = NetworkReading(
                online=online,
                latency_ms=latency,
                error="" if online else f"HTTP {resp.status_code}",
            )
        self._last = reading
        return reading
