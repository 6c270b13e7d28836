from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    status_code: int
    latency_ms: float


@dataclass(frozen=True)
class ExternalCallSample:
    ts: float
    integration: str
    latency_ms: float
    success: bool


_request_samples: Deque[RequestSample] = deque(maxlen=20000)
_external_samples: Deque[ExternalCallSample] = deque(maxlen=10000)
_counters: dict[str, int] = defaultdict(int)


def record_request(*, path: str, status_code: int, latency_ms: float) -> None:
    # Track request latency and status for health reporting.
    _request_samples.append(
        RequestSample(ts=time.time(), path=path, status_code=status_code, latency_ms=latency_ms)
    )


def record_external_call(*, integration: str, latency_ms: float, success: bool) -> None:
    # Capture model/database call latency and outcomes per integration.
    _external_samples.append(
        ExternalCallSample(
            ts=time.time(),
            integration=integration,
            latency_ms=latency_ms,
            success=success,
        )
    )


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def counters() -> dict[str, int]:
    return dict(_counters)


def p95_latency(window_s: int, *, path_prefix: str | None = None) -> float | None:
    cutoff = time.time() - window_s
    samples = [sample for sample in _request_samples if sample.ts >= cutoff]
    if path_prefix:
        samples = [sample for sample in samples if sample.path.startswith(path_prefix)]
    if not samples:
        return None
    latencies = sorted(sample.latency_ms for sample in samples)
    idx = max(0, math.ceil(0.95 * len(latencies)) - 1)
    return latencies[idx]


def external_error_rate(window_s: int) -> dict[str, float]:
    # Share of failed calls per integration over the window.
    cutoff = time.time() - window_s
    totals: dict[str, int] = defaultdict(int)
    failures: dict[str, int] = defaultdict(int)
    for sample in _external_samples:
        if sample.ts < cutoff:
            continue
        totals[sample.integration] += 1
        if not sample.success:
            failures[sample.integration] += 1
    return {name: failures[name] / total for name, total in totals.items()}


def reset() -> None:
    # Tests reset in-process samples between cases.
    _request_samples.clear()
    _external_samples.clear()
    _counters.clear()
