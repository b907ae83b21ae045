"""Tests for the build session — epoch, generation and phase."""

from __future__ import annotations

import asyncio

import pytest

from folio.export.orchestrator import BuildReport
from folio.reactive.session import BuildSession


def _report(*, rebuilt: tuple[str, ...] = (), status: str = "succeeded") -> BuildReport:
    return BuildReport(kind="incremental", status=status, rebuilt=rebuilt)  # type: ignore[arg-type]


class TestInitialState:
    def test_starts_at_zero(self) -> None:
        session = BuildSession()
        snap = session.snapshot()
        assert snap.epoch == 0
        assert snap.generation == 0
        assert snap.phase == "idle"
        assert snap.report is None

    def test_failed_initial_report(self) -> None:
        session = BuildSession(_report(status="partially_failed"))
        assert session.phase == "failed"
        assert session.epoch == 0

    def test_begin_marks_running(self) -> None:
        session = BuildSession()
        session.begin()
        assert session.phase == "running"


class TestComplete:
    @pytest.mark.asyncio
    async def test_changed_pass_advances_epoch(self) -> None:
        session = BuildSession()
        snap = await session.complete(_report(rebuilt=("index.html",)))
        assert snap.epoch == 1
        assert snap.generation == 1
        assert snap.phase == "idle"

    @pytest.mark.asyncio
    async def test_unchanged_pass_keeps_epoch(self) -> None:
        session = BuildSession()
        snap = await session.complete(_report())
        assert snap.epoch == 0
        assert snap.generation == 1

    @pytest.mark.asyncio
    async def test_failed_pass(self) -> None:
        session = BuildSession()
        snap = await session.complete(_report(status="failed"))
        assert snap.phase == "failed"
        assert snap.epoch == 0

    @pytest.mark.asyncio
    async def test_epoch_is_monotonic(self) -> None:
        session = BuildSession()
        epochs = []
        for rebuilt in [("a",), (), ("b",), ("c",), ()]:
            epochs.append((await session.complete(_report(rebuilt=rebuilt))).epoch)
        assert epochs == [1, 1, 2, 3, 3]


class TestWaitForUpdate:
    @pytest.mark.asyncio
    async def test_wakes_on_complete(self) -> None:
        session = BuildSession()
        waiter = asyncio.create_task(session.wait_for_update(0, timeout=2.0))
        await asyncio.sleep(0)
        await session.complete(_report(rebuilt=("a",)))
        snap = await waiter
        assert snap is not None
        assert snap.epoch == 1

    @pytest.mark.asyncio
    async def test_returns_immediately_when_behind(self) -> None:
        session = BuildSession()
        await session.complete(_report())
        snap = await session.wait_for_update(0, timeout=0.01)
        assert snap is not None
        assert snap.generation == 1

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self) -> None:
        session = BuildSession()
        assert await session.wait_for_update(0, timeout=0.01) is None


class TestSubscribers:
    def test_add_remove(self) -> None:
        session = BuildSession()
        token = object()
        session.add_subscriber(token)
        assert session.subscriber_count == 1
        session.remove_subscriber(token)
        session.remove_subscriber(token)
        assert session.subscriber_count == 0
