from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from threading import Lock

from fastapi import Request

logger = logging.getLogger("connect_career")

METRIC_PREFIX = "connect_career"


@dataclass
class MetricsSnapshot:
    requests_total: int
    requests_4xx: int
    requests_5xx: int
    total_latency_ms: float

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.requests_total if self.requests_total else 0.0


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = Lock()
        self._status_classes: Counter[str] = Counter()
        self._total_latency_ms = 0.0
        self._by_route_status: Counter[tuple[str, int]] = Counter()
        self._pipeline_errors: Counter[str] = Counter()

    def record(self, *, route: str, status_code: int, latency_ms: float) -> None:
        with self._lock:
            self._status_classes["all"] += 1
            self._status_classes[f"{status_code // 100}xx"] += 1
            self._total_latency_ms += latency_ms
            self._by_route_status[(route, status_code)] += 1

    def record_pipeline_error(self, code: str) -> None:
        with self._lock:
            self._pipeline_errors[code] += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                requests_total=self._status_classes["all"],
                requests_4xx=self._status_classes["4xx"],
                requests_5xx=self._status_classes["5xx"],
                total_latency_ms=self._total_latency_ms,
            )

    def to_prometheus(self) -> str:
        snap = self.snapshot()
        lines: list[str] = []
        for name, kind, help_text, value in (
            ("requests_total", "counter", "Total HTTP requests", snap.requests_total),
            ("requests_4xx_total", "counter", "Total 4xx HTTP requests", snap.requests_4xx),
            ("requests_5xx_total", "counter", "Total 5xx HTTP requests", snap.requests_5xx),
            (
                "request_avg_latency_ms",
                "gauge",
                "Average request latency ms",
                f"{snap.avg_latency_ms:.2f}",
            ),
        ):
            lines.append(f"# HELP {METRIC_PREFIX}_{name} {help_text}")
            lines.append(f"# TYPE {METRIC_PREFIX}_{name} {kind}")
            lines.append(f"{METRIC_PREFIX}_{name} {value}")

        with self._lock:
            route_counts = sorted(self._by_route_status.items())
            error_counts = sorted(self._pipeline_errors.items())
        if route_counts:
            lines.append(f"# TYPE {METRIC_PREFIX}_route_requests_total counter")
        for (route, status_code), count in route_counts:
            lines.append(
                f'{METRIC_PREFIX}_route_requests_total{{route="{route}",status="{status_code}"}} {count}'
            )
        if error_counts:
            lines.append(f"# TYPE {METRIC_PREFIX}_pipeline_errors_total counter")
        for code, count in error_counts:
            lines.append(f'{METRIC_PREFIX}_pipeline_errors_total{{code="{code}"}} {count}')
        return "\n".join(lines) + "\n"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def route_template(request: Request) -> str:
    # Labels use the route template, never raw entity ids.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def observe_request(
    request: Request,
    call_next,
    *,
    metrics: MetricsRegistry,
):
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record(route=route_template(request), status_code=500, latency_ms=latency_ms)
        logger.exception(
            "request_failed method=%s path=%s latency_ms=%.2f",
            request.method,
            request.url.path,
            latency_ms,
        )
        raise
    latency_ms = (time.perf_counter() - start) * 1000.0
    metrics.record(
        route=route_template(request), status_code=response.status_code, latency_ms=latency_ms
    )
    logger.info(
        "request_complete method=%s path=%s status=%s latency_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response
