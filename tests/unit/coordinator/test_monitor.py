"""Tests for beadherd.coordinator.monitor."""

from __future__ import annotations

import asyncio

import pytest

from beadherd.coordinator.event_bus import EventBus
from beadherd.coordinator.monitor import SessionMonitor
from beadherd.coordinator.registry import SessionRegistry
from beadherd.coordinator.state_machine import LifecycleEvent
from beadherd.errors import CommandTimeoutError, ExecError
from beadherd.protocol.events import SessionStateChanged
from beadherd.protocol.models import SessionState


def _state_events(bus: EventBus, task_id: str = "az-1") -> list[SessionStateChanged]:
    return [e for e in bus.history if isinstance(e, SessionStateChanged) and e.task_id == task_id]


async def _wait_for(predicate, timeout: float = 2.0) -> None:  # type: ignore[no-untyped-def]
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_change_publishes_event(self, monitor: SessionMonitor, registry: SessionRegistry, bus: EventBus, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        fake_tmux.outputs["az-1"] = "Would you like to continue? [y/n]"

        assert await monitor.poll_once("az-1") == SessionState.WAITING
        events = _state_events(bus)
        assert len(events) == 1
        assert events[0].previous == SessionState.BUSY
        assert events[0].state == SessionState.WAITING
        assert events[0].source == "monitor"
        assert registry.get("az-1").state == SessionState.WAITING  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_unchanged_state_publishes_nothing(self, monitor: SessionMonitor, registry: SessionRegistry, bus: EventBus, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        fake_tmux.outputs["az-1"] = "Compiling"
        assert await monitor.poll_once("az-1") is None
        assert await monitor.poll_once("az-1") is None
        assert _state_events(bus) == []

    @pytest.mark.asyncio
    async def test_capture_failure_is_single_error(self, monitor: SessionMonitor, registry: SessionRegistry, bus: EventBus, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        fake_tmux.capture_error = ExecError("tmux", ["capture-pane"], returncode=1, stderr="can't find session")

        assert await monitor.poll_once("az-1") == SessionState.ERROR
        for _ in range(3):
            assert await monitor.poll_once("az-1") is None
        assert [e.state for e in _state_events(bus)] == [SessionState.ERROR]

    @pytest.mark.asyncio
    async def test_capture_timeout_is_error(self, monitor: SessionMonitor, registry: SessionRegistry, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        fake_tmux.capture_error = CommandTimeoutError("tmux", ["capture-pane"], 1.0)
        assert await monitor.poll_once("az-1") == SessionState.ERROR

    @pytest.mark.asyncio
    async def test_paused_ignores_activity_but_not_errors(self, monitor: SessionMonitor, registry: SessionRegistry, bus: EventBus, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        registry.transition("az-1", LifecycleEvent.PAUSE)

        fake_tmux.outputs["az-1"] = "Do you want to go on? [y/n]"
        assert await monitor.poll_once("az-1") is None
        assert registry.get("az-1").state == SessionState.PAUSED  # type: ignore[union-attr]

        fake_tmux.outputs["az-1"] = "Pane is dead"
        assert await monitor.poll_once("az-1") == SessionState.ERROR

    @pytest.mark.asyncio
    async def test_unknown_task(self, monitor: SessionMonitor, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        assert await monitor.poll_once("ghost") is None
        assert fake_tmux.captures == 0


class TestWatchLoop:
    @pytest.mark.asyncio
    async def test_loop_publishes_changes(self, monitor: SessionMonitor, registry: SessionRegistry, bus: EventBus, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        fake_tmux.outputs["az-1"] = "Press Enter to continue"
        monitor.attach("az-1")
        assert monitor.is_watching("az-1")

        await _wait_for(lambda: len(_state_events(bus)) == 1)
        fake_tmux.outputs["az-1"] = "All done"
        await _wait_for(lambda: len(_state_events(bus)) == 2)
        await monitor.detach("az-1")

        assert [e.state for e in _state_events(bus)] == [SessionState.WAITING, SessionState.DONE]

    @pytest.mark.asyncio
    async def test_no_consecutive_duplicate_events(self, monitor: SessionMonitor, registry: SessionRegistry, bus: EventBus, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        monitor.attach("az-1")
        for text in ["Loading", "Loading", "[y/n]", "[y/n]", "Building", "Error: x", "Error: x", "Installing"]:
            fake_tmux.outputs["az-1"] = text
            start = fake_tmux.captures
            await _wait_for(lambda: fake_tmux.captures >= start + 2)
        await monitor.detach("az-1")

        states = [e.state for e in _state_events(bus)]
        assert states
        assert all(a != b for a, b in zip(states, states[1:]))

    @pytest.mark.asyncio
    async def test_detach_is_idempotent_and_final(self, monitor: SessionMonitor, registry: SessionRegistry, bus: EventBus, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        monitor.attach("az-1")
        await _wait_for(lambda: fake_tmux.captures >= 1)

        await monitor.detach("az-1")
        await monitor.detach("az-1")
        assert not monitor.is_watching("az-1")

        seen = len(bus.history)
        captures = fake_tmux.captures
        fake_tmux.outputs["az-1"] = "Error: late"
        await asyncio.sleep(0.05)
        assert len(bus.history) == seen
        assert fake_tmux.captures == captures

    @pytest.mark.asyncio
    async def test_loop_exits_when_session_removed(self, monitor: SessionMonitor, registry: SessionRegistry, fake_tmux) -> None:  # type: ignore[no-untyped-def]
        registry.start("az-1")
        monitor.attach("az-1")
        await _wait_for(lambda: fake_tmux.captures >= 1)
        registry.remove("az-1")
        await _wait_for(lambda: not monitor.is_watching("az-1"))
        assert monitor.watched == []

    @pytest.mark.asyncio
    async def test_reattach_replaces_loop(self, monitor: SessionMonitor, registry: SessionRegistry) -> None:
        registry.start("az-1")
        monitor.attach("az-1")
        monitor.attach("az-1")
        assert monitor.watched == ["az-1"]
        await monitor.stop_all()
        assert monitor.watched == []

    @pytest.mark.asyncio
    async def test_stop_all(self, monitor: SessionMonitor, registry: SessionRegistry) -> None:
        for tid in ("az-1", "az-2", "az-3"):
            registry.start(tid)
            monitor.attach(tid)
        assert monitor.watched == ["az-1", "az-2", "az-3"]
        await monitor.stop_all()
        assert monitor.watched == []
        for tid in ("az-1", "az-2", "az-3"):
            assert not monitor.is_watching(tid)
