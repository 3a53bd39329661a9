"""Request caching, in-flight deduplication and network benchmarking"""

import asyncio
import functools
import json
import time
from collections import Counter, OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np
import requests
import structlog

from flowperf.core.exceptions import HTTPStatusError, TransportError
from flowperf.core.models import CacheEntry, NetworkRecord, NetworkReport
from flowperf.core.sample_store import RingBuffer
from flowperf.profiling.calculator import percentile_index

logger = structlog.get_logger()

DEFAULT_CACHE_TTL_MS = 5 * 60 * 1000
CACHE_HIT_HEURISTIC_MS = 10.0

SOURCE_NETWORK = "network"
SOURCE_CACHE = "cache"
SOURCE_SHARED = "shared"


class TTLCache:
    """Insertion-ordered cache whose entries expire ``ttl_ms`` after being stored

    Only ``get`` counts towards the hit/miss statistics.
    """

    def __init__(self,
                 capacity: int = 100,
                 default_ttl_ms: float = DEFAULT_CACHE_TTL_MS,
                 clock: Callable[[], float] = time.monotonic):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.default_ttl_ms = default_ttl_ms
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if not entry.is_valid(self.clock()):
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return entry

    def put(self, key: str, payload: Any, ttl_ms: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            payload=payload,
            stored_at=self.clock(),
            ttl_ms=self.default_ttl_ms if ttl_ms is None else ttl_ms,
        )

        self._entries.pop(key, None)
        self._entries[key] = entry

        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
            self.evictions += 1

        return entry

    def valid_entries(self) -> List[CacheEntry]:
        now = self.clock()
        return [entry for entry in self._entries.values() if entry.is_valid(now)]

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
        }

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class RequestDeduplicator:
    """Share one in-flight execution between concurrent callers of the same key"""

    def __init__(self):
        self._inflight: Dict[str, asyncio.Task] = {}
        self.executions = 0
        self.deduplicated = 0

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter was cancelled
            task.exception()

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Tuple[Any, bool]:
        """Await the execution for ``key``; returns (result, shared)"""
        task = self._inflight.get(key)
        if task is not None:
            self.deduplicated += 1
            return await asyncio.shield(task), True

        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        self.executions += 1
        task.add_done_callback(functools.partial(self._release, key))
        return await asyncio.shield(task), False


@dataclass
class TransportResponse:
    status_code: int
    payload: Any = None
    size: int = 0


class Transport(Protocol):

    async def request(self, method: str, url: str, payload: Any = None) -> TransportResponse:
        ...


class HttpTransport:
    """Blocking ``requests`` session driven from the default executor"""

    def __init__(self, base_url: str = "", timeout: float = 10.0,
                 session: Optional[requests.Session] = None,
                 headers: Optional[Dict[str, str]] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)

    def _url(self, url: str) -> str:
        if self.base_url and not url.startswith(("http://", "https://")):
            return f"{self.base_url}/{url.lstrip('/')}"
        return url

    def _send(self, method: str, url: str, payload: Any) -> TransportResponse:
        full_url = self._url(url)
        try:
            response = self.session.request(
                method,
                full_url,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(full_url, str(e))

        if response.status_code >= 400:
            raise HTTPStatusError(full_url, response.status_code)

        content = response.content or b""
        try:
            body = response.json() if content else None
        except ValueError:
            body = response.text

        return TransportResponse(status_code=response.status_code, payload=body, size=len(content))

    async def request(self, method: str, url: str, payload: Any = None) -> TransportResponse:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send, method.upper(), url, payload)

    def close(self) -> None:
        self.session.close()


def _payload_size(response: Any) -> int:
    if isinstance(response, TransportResponse):
        return response.size
    try:
        return len(json.dumps(response, default=str))
    except (TypeError, ValueError):
        return 0


@dataclass
class NetworkTest:
    name: str
    url: str
    method: str = "GET"
    iterations: int = 10
    concurrent: bool = False
    payload: Any = None
    timeout_s: Optional[float] = None
    expected_response_ms: Optional[float] = None
    description: str = ""

    __test__ = False


def generate_network_recommendations(test: NetworkTest,
                                     report: NetworkReport,
                                     records: Sequence[NetworkRecord]) -> List[str]:
    recommendations = []

    if report.avg_duration_ms > 1000:
        recommendations.append("HIGH: Average response time is over 1 second")
        recommendations.append("Consider API optimization, caching, or CDN implementation")
    elif report.avg_duration_ms > 500:
        recommendations.append("MEDIUM: Response time could be improved")
        recommendations.append("Review database queries and API endpoint efficiency")

    failure_percent = report.failure_rate * 100
    if failure_percent > 5:
        recommendations.append(f"HIGH: Failure rate is {failure_percent:.1f}% - implement retry logic")
        recommendations.append("Add circuit breaker pattern for better resilience")
    elif failure_percent > 1:
        recommendations.append(f"MEDIUM: Failure rate is {failure_percent:.1f}% - monitor error patterns")

    if report.throughput_rps < 10:
        recommendations.append("LOW: Throughput is low - consider request optimization")
        recommendations.append("Implement request batching or concurrent processing")

    if test.method.upper() == "GET":
        if report.cache_hit_rate < 0.2:
            recommendations.append("LOW: Cache hit rate is low - review caching strategy")
            recommendations.append("Consider a longer cache TTL for static data")
        elif report.cache_hit_rate > 0.8:
            recommendations.append("GOOD: Cache hit rate is excellent")

    average_size = report.total_bytes / report.total_requests if report.total_requests else 0
    if average_size > 100 * 1024:
        recommendations.append("MEDIUM: Large response sizes detected")
        recommendations.append("Consider response compression and pagination")

    if report.max_duration_ms - report.min_duration_ms > 2000:
        recommendations.append("MEDIUM: High response time variability detected")
        recommendations.append("Investigate performance bottlenecks and load balancing")

    counts = Counter(record.key for record in records)
    duplicate_patterns = sum(1 for count in counts.values() if count > 1)
    if duplicate_patterns:
        recommendations.append(f"INFO: {duplicate_patterns} duplicate request patterns found")
        recommendations.append("Request deduplication is working effectively")

    return recommendations


class NetworkOptimizer:
    """Executes requests through a TTL cache and in-flight deduplication"""

    def __init__(self,
                 transport: Optional[Transport] = None,
                 cache: Optional[TTLCache] = None,
                 request_delay_ms: float = 10,
                 batch_pause_ms: float = 100,
                 max_concurrency: int = 10,
                 history_size: int = 500):
        self.transport = transport or HttpTransport()
        self.cache = cache if cache is not None else TTLCache()
        self.deduplicator = RequestDeduplicator()
        self.request_delay = request_delay_ms / 1000.0
        self.batch_pause = batch_pause_ms / 1000.0
        self.max_concurrency = max(1, min(max_concurrency, 10))
        self._records: RingBuffer[NetworkRecord] = RingBuffer(history_size)
        self._reports: List[NetworkReport] = []

    @classmethod
    def from_config(cls, config, transport: Optional[Transport] = None) -> "NetworkOptimizer":
        section = config.get_section("network")
        cache = TTLCache(
            capacity=section.get("cache_capacity", 100),
            default_ttl_ms=section.get("cache_ttl_ms", DEFAULT_CACHE_TTL_MS),
        )
        return cls(
            transport=transport or HttpTransport(timeout=section.get("request_timeout_s", 10)),
            cache=cache,
            request_delay_ms=section.get("request_delay_ms", 10),
            batch_pause_ms=section.get("batch_pause_ms", 100),
            max_concurrency=section.get("max_concurrency", 10),
        )

    async def _fetch(self, method: str, url: str, payload: Any = None) -> Tuple[Any, str]:
        method = method.upper()
        key = f"{method}:{url}"

        if method == "GET":
            cached = self.cache.get(key)
            if cached is not None:
                return cached.payload, SOURCE_CACHE

        response, shared = await self.deduplicator.run(
            key, lambda: self.transport.request(method, url, payload))

        if method == "GET" and not shared:
            self.cache.put(key, response)

        return response, SOURCE_SHARED if shared else SOURCE_NETWORK

    async def request(self, method: str, url: str, payload: Any = None) -> Any:
        """Return the response for ``method url``, served from cache when possible"""
        response, _ = await self._fetch(method, url, payload)
        return response

    async def _timed_request(self, method: str, url: str, payload: Any = None) -> Tuple[NetworkRecord, str]:
        method = method.upper()
        start = time.perf_counter()
        try:
            response, source = await self._fetch(method, url, payload)
        except Exception as e:
            status = getattr(e, "status_code", 0)
            record = NetworkRecord(
                url=url,
                method=method,
                duration_ms=(time.perf_counter() - start) * 1000,
                response_bytes=0,
                status_code=status if isinstance(status, int) else 0,
            )
            logger.debug("Request failed", url=url, method=method, error=str(e))
            self._records.append(record)
            return record, SOURCE_NETWORK

        record = NetworkRecord(
            url=url,
            method=method,
            duration_ms=(time.perf_counter() - start) * 1000,
            response_bytes=_payload_size(response),
            status_code=getattr(response, "status_code", 200),
        )
        self._records.append(record)
        return record, source

    async def execute(self, method: str, url: str, payload: Any = None) -> NetworkRecord:
        """Issue one request and return its record; failures are recorded, not raised"""
        record, _ = await self._timed_request(method, url, payload)
        return record

    async def _run_sequential(self, test: NetworkTest,
                              results: List[Tuple[NetworkRecord, str]]) -> None:
        for i in range(test.iterations):
            results.append(await self._timed_request(test.method, test.url, test.payload))
            if i < test.iterations - 1:
                await asyncio.sleep(self.request_delay)

    async def _run_concurrent(self, test: NetworkTest,
                              results: List[Tuple[NetworkRecord, str]]) -> None:
        batch_size = max(1, min(test.iterations, self.max_concurrency))
        remaining = test.iterations

        while remaining > 0:
            size = min(batch_size, remaining)
            outcomes = await asyncio.gather(
                *(self._timed_request(test.method, test.url, test.payload) for _ in range(size)),
                return_exceptions=True,
            )

            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    record = NetworkRecord(url=test.url, method=test.method.upper(),
                                           duration_ms=0.0, response_bytes=0, status_code=0)
                    results.append((record, SOURCE_NETWORK))
                else:
                    results.append(outcome)

            remaining -= size
            if remaining > 0:
                await asyncio.sleep(self.batch_pause)

    async def run_optimization_test(self, test: NetworkTest) -> NetworkReport:
        logger.info(f"Running network optimization test: {test.name}",
                    url=test.url, iterations=test.iterations, concurrent=test.concurrent)

        results: List[Tuple[NetworkRecord, str]] = []
        error = None
        runner = self._run_concurrent if test.concurrent else self._run_sequential

        start = time.perf_counter()
        try:
            if test.timeout_s:
                await asyncio.wait_for(runner(test, results), timeout=test.timeout_s)
            else:
                await runner(test, results)
        except asyncio.TimeoutError:
            error = f"Test timed out after {test.timeout_s}s"
            logger.error(f"Network test failed: {test.name}", error=error)
        except Exception as e:
            error = str(e)
            logger.error(f"Network test failed: {test.name}", error=error)
        elapsed_s = time.perf_counter() - start

        report = self.analyze_results(test, results, elapsed_s)
        if error is not None:
            report.success = False
            report.error = error

        self._reports.append(report)
        logger.info(f"{test.name}: {report.avg_duration_ms:.0f}ms avg, {report.throughput_rps:.1f} req/s",
                    failures=report.failure_count)
        return report

    def analyze_results(self, test: NetworkTest,
                        results: Sequence[Tuple[NetworkRecord, str]],
                        elapsed_s: float) -> NetworkReport:
        records = [record for record, _ in results]
        successful = [r for r in records if 200 <= r.status_code < 400]
        failed = [r for r in records if r.failed]

        durations = sorted(r.duration_ms for r in successful)
        n = len(durations)

        is_get = test.method.upper() == "GET"
        if is_get and records:
            cache_hits = sum(1 for _, source in results if source == SOURCE_CACHE)
            cache_hit_rate = cache_hits / len(records)
            fast = sum(1 for r in records if r.duration_ms < CACHE_HIT_HEURISTIC_MS)
            estimated_cache_hit_rate = fast / len(records)
        else:
            cache_hit_rate = 0.0
            estimated_cache_hit_rate = 0.0

        report = NetworkReport(
            test_name=test.name,
            url=test.url,
            total_requests=len(records),
            success_count=len(successful),
            failure_count=len(failed),
            avg_duration_ms=float(np.mean(durations)) if n else 0.0,
            median_duration_ms=durations[n // 2] if n else 0.0,
            p95_duration_ms=durations[percentile_index(n, 0.95)] if n else 0.0,
            p99_duration_ms=durations[percentile_index(n, 0.99)] if n else 0.0,
            min_duration_ms=durations[0] if n else 0.0,
            max_duration_ms=durations[-1] if n else 0.0,
            throughput_rps=len(successful) / elapsed_s if elapsed_s > 0 else 0.0,
            total_bytes=sum(r.response_bytes for r in records),
            cache_hit_rate=cache_hit_rate,
            estimated_cache_hit_rate=estimated_cache_hit_rate,
            deduplicated_requests=sum(1 for _, source in results if source == SOURCE_SHARED),
            records=records,
        )
        report.recommendations = generate_network_recommendations(test, report, records)
        return report

    async def run_optimization_tests(self, tests: Sequence[NetworkTest],
                                     pause_s: float = 0.2) -> List[NetworkReport]:
        reports = []
        for index, test in enumerate(tests):
            reports.append(await self.run_optimization_test(test))
            if pause_s and index < len(tests) - 1:
                await asyncio.sleep(pause_s)

        total_requests = sum(r.total_requests for r in reports)
        total_failures = sum(r.failure_count for r in reports)
        average = sum(r.avg_duration_ms for r in reports) / len(reports) if reports else 0.0
        failure_rate = total_failures / total_requests * 100 if total_requests else 0.0

        logger.info("Network optimization summary",
                    tests_run=len(reports),
                    total_requests=total_requests,
                    average_response_time=f"{average:.0f}ms",
                    failure_rate=f"{failure_rate:.1f}%")
        return reports

    def get_cache_stats(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        stats["entries"] = self.cache.valid_entries()
        stats["in_flight"] = len(self.deduplicator)
        stats["deduplicated"] = self.deduplicator.deduplicated
        return stats

    def get_records(self) -> List[NetworkRecord]:
        return self._records.snapshot()

    def get_reports(self) -> List[NetworkReport]:
        return list(self._reports)

    def clear_cache(self) -> None:
        self.cache.clear()

    def clear_metrics(self) -> None:
        self._records.clear()
        self._reports.clear()
