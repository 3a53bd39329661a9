"""Bounded ring buffers for runtime samples"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Generic, Iterable, List, Optional, TypeVar

from flowperf.core.models import (
    InteractionRecord,
    MemorySnapshot,
    MetricKind,
    NetworkRecord,
    PerformanceSample,
    RenderRecord,
)

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity buffer; the oldest item is evicted on overflow"""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._items: Deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def append(self, item: T) -> None:
        self._items.append(item)

    def extend(self, items: Iterable[T]) -> None:
        self._items.extend(items)

    def snapshot(self) -> List[T]:
        """Copy of the current contents, oldest first"""
        return list(self._items)

    def latest(self, n: int) -> List[T]:
        if n <= 0:
            return []
        items = list(self._items)
        return items[-n:]

    def last(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __iter__(self):
        return iter(self.snapshot())


@dataclass
class StoreLimits:
    samples_per_metric: int = 100
    memory: int = 100
    network: int = 500
    interaction: int = 500
    render: int = 500


class SampleStore:
    """Last N samples of each signal kind"""

    def __init__(self, limits: Optional[StoreLimits] = None):
        self.limits = limits or StoreLimits()
        self.samples: Dict[MetricKind, RingBuffer[PerformanceSample]] = {
            kind: RingBuffer(self.limits.samples_per_metric) for kind in MetricKind
        }
        self.memory: RingBuffer[MemorySnapshot] = RingBuffer(self.limits.memory)
        self.network: RingBuffer[NetworkRecord] = RingBuffer(self.limits.network)
        self.interactions: RingBuffer[InteractionRecord] = RingBuffer(self.limits.interaction)
        self.renders: RingBuffer[RenderRecord] = RingBuffer(self.limits.render)

    def add_sample(self, sample: PerformanceSample) -> None:
        self.samples[sample.kind].append(sample)

    def latest_sample(self, kind: MetricKind) -> Optional[PerformanceSample]:
        return self.samples[kind].last()

    def get_samples(self, kind: MetricKind) -> List[PerformanceSample]:
        return self.samples[kind].snapshot()

    def get_memory(self) -> List[MemorySnapshot]:
        return self.memory.snapshot()

    def get_network(self) -> List[NetworkRecord]:
        return self.network.snapshot()

    def get_interactions(self) -> List[InteractionRecord]:
        return self.interactions.snapshot()

    def get_renders(self) -> List[RenderRecord]:
        return self.renders.snapshot()

    def clear(self) -> None:
        for buffer in self.samples.values():
            buffer.clear()
        self.memory.clear()
        self.network.clear()
        self.interactions.clear()
        self.renders.clear()

    def sizes(self) -> Dict[str, int]:
        return {
            "samples": sum(len(b) for b in self.samples.values()),
            "memory": len(self.memory),
            "network": len(self.network),
            "interactions": len(self.interactions),
            "renders": len(self.renders),
        }
