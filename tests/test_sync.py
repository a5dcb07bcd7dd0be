"""
Tests for concurrency primitives and wakers.

Covers:
  - Once latch
  - RWLock reader sharing / writer exclusion
  - WaitGroup joining dynamically spawned tasks
  - TimedWaker / ManualWaker release semantics
"""

from __future__ import annotations

import asyncio
import threading
import time

import pytest


class TestOnce:
    def test_runs_only_first_time(self):
        from core.sync import Once

        calls = []
        once = Once()
        assert once.do(lambda: calls.append(1)) is True
        assert once.do(lambda: calls.append(2)) is False
        assert calls == [1]
        assert once.done

    def test_concurrent_callers(self):
        from core.sync import Once

        calls = []
        once = Once()
        threads = [
            threading.Thread(target=once.do, args=(lambda: calls.append(1),))
            for _ in range(16)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert calls == [1]


class TestRWLock:
    def test_readers_share(self):
        from core.sync import RWLock

        lock = RWLock()
        with lock.read():
            # A second reader from another thread must not block.
            entered = threading.Event()

            def reader():
                with lock.read():
                    entered.set()

            t = threading.Thread(target=reader)
            t.start()
            assert entered.wait(timeout=1.0)
            t.join()

    def test_writer_waits_for_readers(self):
        from core.sync import RWLock

        lock = RWLock()
        order = []

        def writer():
            with lock.write():
                order.append("write")

        with lock.read():
            t = threading.Thread(target=writer)
            t.start()
            time.sleep(0.05)
            order.append("read-done")
        t.join(timeout=1.0)

        assert order == ["read-done", "write"]


class TestWaitGroup:
    @pytest.mark.asyncio
    async def test_waits_for_tasks_spawned_later(self):
        from core.sync import WaitGroup

        group = WaitGroup()
        finished = []

        async def child():
            await asyncio.sleep(0.02)
            finished.append("child")

        async def parent():
            await asyncio.sleep(0.01)
            group.spawn(child(), name="child")
            finished.append("parent")

        group.spawn(parent(), name="parent")
        assert len(group) == 1
        await asyncio.wait_for(group.wait(), timeout=1.0)

        assert finished == ["parent", "child"]
        assert len(group) == 0

    @pytest.mark.asyncio
    async def test_crashed_task_does_not_break_wait(self, caplog):
        from core.sync import WaitGroup

        async def boom():
            raise RuntimeError("boom")

        group = WaitGroup()
        group.spawn(boom(), name="boom")
        await asyncio.wait_for(group.wait(), timeout=1.0)

        assert len(group) == 0
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_group_returns_immediately(self):
        from core.sync import WaitGroup

        await asyncio.wait_for(WaitGroup().wait(), timeout=0.1)


class TestIoPool:
    def test_pool_is_shared_until_shutdown(self, monkeypatch):
        from config.settings import get_settings
        from core.async_utils import get_io_pool, shutdown_io_pool

        monkeypatch.setenv("IO_THREADS", "3")
        get_settings.cache_clear()
        shutdown_io_pool()

        pool = get_io_pool()
        assert get_io_pool() is pool
        assert pool._max_workers == 3

        shutdown_io_pool()
        assert get_io_pool() is not pool
        shutdown_io_pool()


class TestWakers:
    @pytest.mark.asyncio
    async def test_timed_waker_releases_all_waiters_together(self):
        from tailer.waker import TimedWaker

        waker = TimedWaker(0.02)
        first, second = waker.wake(), waker.wake()
        assert waker.sleepers == 2

        await asyncio.wait_for(asyncio.gather(first, second), timeout=1.0)
        assert waker.sleepers == 0

    @pytest.mark.asyncio
    async def test_timed_waker_interval_from_settings(self, monkeypatch):
        from config.settings import get_settings
        from tailer.waker import TimedWaker

        monkeypatch.setenv("WAKE_INTERVAL", "0.5")
        get_settings.cache_clear()
        assert TimedWaker().interval == 0.5

    @pytest.mark.asyncio
    async def test_manual_waker_awaken_waits_for_sleepers(self):
        from tailer.waker import ManualWaker

        waker = ManualWaker()
        woken = []

        async def sleeper(tag):
            await waker.wake()
            woken.append(tag)

        tasks = [asyncio.create_task(sleeper(i)) for i in range(2)]
        released = await asyncio.wait_for(waker.awaken(2), timeout=1.0)
        await asyncio.gather(*tasks)

        assert released == 2
        assert sorted(woken) == [0, 1]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_not_a_sleeper(self):
        from tailer.waker import ManualWaker

        waker = ManualWaker()
        fut = waker.wake()
        fut.cancel()
        assert waker.sleepers == 0
        assert waker.wake_all() == 0
