"""Tests for beadherd.coordinator.loop."""

from __future__ import annotations

import asyncio
import json

import pytest
from conftest import FakeRunner

from beadherd.adapters.beads import BeadsClient
from beadherd.coordinator.diagnostics import DiagnosticsAggregator
from beadherd.coordinator.event_bus import EventBus
from beadherd.coordinator.loop import RefreshLoop
from beadherd.coordinator.ports import PortAllocator
from beadherd.coordinator.registry import SessionRegistry
from beadherd.errors import ExecError
from beadherd.protocol.events import (
    DiagnosticsCollected,
    NetworkStatusChanged,
    TaskSourceFailed,
    TasksLoaded,
)
from beadherd.protocol.models import NetworkReading

ISSUES = json.dumps([{"id": "az-1", "title": "First"}, {"id": "az-2", "title": "Second"}])


class ScriptedProbe:
    def __init__(self, *readings: NetworkReading) -> None:
        self.readings = list(readings)

    async def check_online(self, timeout: float | None = None) -> NetworkReading:
        return self.readings.pop(0) if len(self.readings) > 1 else self.readings[0]


def _loop(runner: FakeRunner, bus: EventBus, registry: SessionRegistry, ports: PortAllocator, probe: ScriptedProbe | None = None) -> RefreshLoop:
    beads = BeadsClient(runner, retry_attempts=1)
    aggregator = DiagnosticsAggregator(registry, ports, network=probe)  # type: ignore[arg-type]
    return RefreshLoop(beads, aggregator, bus, interval=0.01)


class TestTick:
    @pytest.mark.asyncio
    async def test_tick_loads_tasks_and_collects(self, bus: EventBus, registry: SessionRegistry, ports: PortAllocator) -> None:
        loop = _loop(FakeRunner({"list": ISSUES}), bus, registry, ports)
        await loop.tick()

        assert [t.id for t in loop.tasks] == ["az-1", "az-2"]
        kinds = [type(e) for e in bus.history]
        assert kinds == [TasksLoaded, DiagnosticsCollected]

    @pytest.mark.asyncio
    async def test_load_failure_keeps_previous_tasks(self, bus: EventBus, registry: SessionRegistry, ports: PortAllocator) -> None:
        failure = ExecError("bd", ["list"], message="bd not found on PATH", retryable=False)
        loop = _loop(FakeRunner({"list": [ISSUES, failure]}), bus, registry, ports)

        await loop.tick(diagnostics=False)
        await loop.tick(diagnostics=False)

        assert len(loop.tasks) == 2
        failed = [e for e in bus.history if isinstance(e, TaskSourceFailed)]
        assert len(failed) == 1
        assert "not found" in failed[0].error

    @pytest.mark.asyncio
    async def test_network_change_published_once_per_flip(self, bus: EventBus, registry: SessionRegistry, ports: PortAllocator) -> None:
        probe = ScriptedProbe(
            NetworkReading(online=True),
            NetworkReading(online=True),
            NetworkReading(online=False, error="timed out"),
            NetworkReading(online=False),
        )
        loop = _loop(FakeRunner(default="[]"), bus, registry, ports, probe)
        for _ in range(4):
            await loop.tick()

        changes = [e.reading.online for e in bus.history if isinstance(e, NetworkStatusChanged)]
        assert changes == [True, False]

    @pytest.mark.asyncio
    async def test_unavailable_network_publishes_no_change(self, bus: EventBus, registry: SessionRegistry, ports: PortAllocator) -> None:
        loop = _loop(FakeRunner(default="[]"), bus, registry, ports)
        await loop.tick()
        assert not any(isinstance(e, NetworkStatusChanged) for e in bus.history)


class TestBackgroundLoop:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, bus: EventBus, registry: SessionRegistry, ports: PortAllocator) -> None:
        runner = FakeRunner(default="[]")
        loop = _loop(runner, bus, registry, ports)
        loop.start()
        loop.start()
        assert loop.running

        async def _loaded_twice() -> None:
            while sum(isinstance(e, TasksLoaded) for e in bus.history) < 2:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_loaded_twice(), timeout=2.0)
        await loop.stop()
        assert not loop.running

        calls = len(runner.calls)
        await asyncio.sleep(0.05)
        assert len(runner.calls) == calls
        await loop.stop()
