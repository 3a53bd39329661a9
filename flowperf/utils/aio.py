"""Asyncio helpers shared by the profiling components"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Union

import structlog

logger = structlog.get_logger()


async def maybe_await(func: Optional[Callable[[], Any]]) -> Any:
    """Call ``func`` and await the result when it is awaitable"""
    if func is None:
        return None
    result = func()
    if inspect.isawaitable(result):
        result = await result
    return result


class Subscription:
    """Handle returned by ``subscribe``; ``cancel()`` detaches the callback"""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel:
            self._on_cancel()


class SignalChannel:
    """In-process fan-out of runtime signal entries to subscribers"""

    def __init__(self, name: str = "signal"):
        self.name = name
        self._callbacks: List[Callable[[Any], None]] = []

    def subscribe(self, callback: Callable[[Any], None]) -> Subscription:
        self._callbacks.append(callback)

        def detach():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(detach)

    def publish(self, entry: Any) -> int:
        """Deliver ``entry`` to every subscriber; returns the delivery count"""
        delivered = 0
        for callback in list(self._callbacks):
            try:
                callback(entry)
                delivered += 1
            except Exception as e:
                logger.error("Signal subscriber failed", channel=self.name, error=str(e))
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)


TickCallback = Callable[[], Union[None, Awaitable[None]]]


class PeriodicTask:
    """Run ``callback`` every ``interval_ms`` on the running loop until cancelled

    Instances are used as disposers: calling the object cancels it.
    """

    def __init__(self, callback: TickCallback, interval_ms: float, name: str = "periodic"):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")

        self.callback = callback
        self.interval = interval_ms / 1000.0
        self.name = name
        self.ticks = 0
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "PeriodicTask":
        if self._task is None and not self._cancelled:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    async def _run(self):
        while not self._cancelled:
            await asyncio.sleep(self.interval)
            if self._cancelled:
                break
            try:
                await maybe_await(self.callback)
                self.ticks += 1
            except Exception as e:
                logger.error("Periodic task tick failed", task=self.name, error=str(e))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("Periodic task cancelled", task=self.name, ticks=self.ticks)

    def __call__(self) -> None:
        self.cancel()
