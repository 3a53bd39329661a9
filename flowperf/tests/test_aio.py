"""Tests for asyncio helpers"""

import asyncio

import pytest

from flowperf.utils.aio import PeriodicTask, SignalChannel, maybe_await


class TestMaybeAwait:

    @pytest.mark.asyncio
    async def test_sync_and_async(self):
        async def async_value():
            return 2

        assert await maybe_await(lambda: 1) == 1
        assert await maybe_await(async_value) == 2
        assert await maybe_await(None) is None


class TestSignalChannel:
    """Test SignalChannel class"""

    def test_publish_and_cancel(self):
        channel = SignalChannel("paint")
        received = []

        subscription = channel.subscribe(received.append)
        assert channel.publish({"name": "first-contentful-paint"}) == 1

        subscription.cancel()
        subscription.cancel()
        assert channel.publish({"name": "ignored"}) == 0

        assert len(received) == 1
        assert subscription.cancelled
        assert channel.subscriber_count == 0

    def test_failing_subscriber_is_isolated(self):
        channel = SignalChannel()
        received = []

        def broken(entry):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(received.append)

        assert channel.publish(1) == 1
        assert received == [1]


class TestPeriodicTask:
    """Test PeriodicTask class"""

    @pytest.mark.asyncio
    async def test_ticks_until_cancelled(self):
        calls = []
        task = PeriodicTask(lambda: calls.append(1), interval_ms=10).start()

        await asyncio.sleep(0.1)
        assert task.running

        task()
        count = len(calls)
        await asyncio.sleep(0.05)

        assert count >= 2
        assert len(calls) == count
        assert not task.running

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_ticks(self):
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("tick failed")

        task = PeriodicTask(flaky, interval_ms=10).start()
        await asyncio.sleep(0.1)
        task.cancel()

        assert len(calls) >= 2
        assert task.ticks == 0

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            PeriodicTask(lambda: None, interval_ms=0)
