"""Tests for best-effort background tasks."""

from __future__ import annotations

import asyncio

from encore.core.tasks import drain_background, pending_background_count, spawn_background


class TestSpawnBackground:
    """Detached tasks never propagate their failures."""

    async def test_runs_to_completion(self) -> None:
        done: list[str] = []

        async def work() -> None:
            done.append("ok")

        spawn_background(work(), name="work")
        await drain_background()

        assert done == ["ok"]
        assert pending_background_count() == 0

    async def test_failure_is_logged_not_raised(self, caplog) -> None:
        async def boom() -> None:
            raise RuntimeError("stream down")

        task = spawn_background(boom(), name="boom")
        await drain_background()

        assert task.done()
        assert pending_background_count() == 0
        assert "Background task boom failed" in caplog.text

    async def test_drain_cancels_overrunning_tasks(self) -> None:
        async def slow() -> None:
            await asyncio.sleep(10)

        task = spawn_background(slow(), name="slow")
        await drain_background(timeout=0.05)
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert pending_background_count() == 0

    async def test_drain_without_tasks(self) -> None:
        await drain_background()
