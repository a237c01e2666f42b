"""Metrics and monitoring endpoints for the proxy.

Read-only views over the proxy's counters, the response cache and the rate
limiter. Nothing here can mutate bucket or cache state.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

if TYPE_CHECKING:
    from finproxy.app.core.cache import TTLCache
    from finproxy.app.core.rate_limit import TokenBucketRateLimiter

router = APIRouter()


@dataclass
class UpstreamMetrics:
    """Upstream call counters for one host."""

    count: int = 0
    total_duration: float = 0.0


@dataclass
class MetricsCollector:
    """Collects proxy outcome and upstream latency metrics.

    Methods are synchronous; the proxy runs on one event loop and never
    awaits while updating counters.
    """

    _outcomes: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _served_from_cache: int = 0
    _upstream: Dict[str, UpstreamMetrics] = field(
        default_factory=lambda: defaultdict(UpstreamMetrics)
    )
    _start_time: float = field(default_factory=time.time)

    def record_outcome(self, code: str, cache_hit: bool = False) -> None:
        """Record the outcome of one proxied request.

        Args:
            code: ``OK`` or the error code of the failure
            cache_hit: Whether a successful response came from the cache
        """
        self._outcomes[code] += 1
        if cache_hit:
            self._served_from_cache += 1

    def record_upstream_call(self, host: str, duration: float) -> None:
        metrics = self._upstream[host]
        metrics.count += 1
        metrics.total_duration += duration

    def get_summary(self) -> Dict[str, Any]:
        total = sum(self._outcomes.values())
        errors = total - self._outcomes.get("OK", 0)
        return {
            "uptime_seconds": round(time.time() - self._start_time, 2),
            "total_requests": total,
            "total_errors": errors,
            "error_rate": round(errors / total, 4) if total > 0 else 0,
            "served_from_cache": self._served_from_cache,
            "outcomes": dict(self._outcomes),
            "upstream": {
                host: {
                    "calls": m.count,
                    "avg_duration_ms": round((m.total_duration / m.count) * 1000, 2),
                }
                for host, m in self._upstream.items()
                if m.count > 0
            },
        }

    def get_prometheus_metrics(
        self, cache: "TTLCache", rate_limiter: "TokenBucketRateLimiter"
    ) -> str:
        """Get metrics in Prometheus text format."""
        lines = []

        lines.append("# HELP finproxy_requests_total Proxied requests by outcome code")
        lines.append("# TYPE finproxy_requests_total counter")
        for code, count in sorted(self._outcomes.items()):
            lines.append(f'finproxy_requests_total{{code="{code}"}} {count}')

        lines.append("\n# HELP finproxy_upstream_calls_total Upstream calls per host")
        lines.append("# TYPE finproxy_upstream_calls_total counter")
        for host, m in sorted(self._upstream.items()):
            lines.append(f'finproxy_upstream_calls_total{{host="{host}"}} {m.count}')

        lines.append(
            "\n# HELP finproxy_upstream_duration_seconds Total upstream call duration per host"
        )
        lines.append("# TYPE finproxy_upstream_duration_seconds counter")
        for host, m in sorted(self._upstream.items()):
            lines.append(
                f'finproxy_upstream_duration_seconds{{host="{host}"}} {m.total_duration}'
            )

        cache_stats = cache.get_stats()
        lines.append("\n# HELP finproxy_cache_hits_total Response cache hits")
        lines.append("# TYPE finproxy_cache_hits_total counter")
        lines.append(f"finproxy_cache_hits_total {cache_stats['hits']}")
        lines.append("\n# HELP finproxy_cache_misses_total Response cache misses")
        lines.append("# TYPE finproxy_cache_misses_total counter")
        lines.append(f"finproxy_cache_misses_total {cache_stats['misses']}")
        lines.append("\n# HELP finproxy_cache_entries Resident response cache entries")
        lines.append("# TYPE finproxy_cache_entries gauge")
        lines.append(f"finproxy_cache_entries {cache_stats['size']}")

        lines.append("\n# HELP finproxy_rate_limit_buckets Resident rate limit buckets")
        lines.append("# TYPE finproxy_rate_limit_buckets gauge")
        lines.append(f"finproxy_rate_limit_buckets {rate_limiter.get_stats()['total_buckets']}")

        lines.append("\n# HELP finproxy_uptime_seconds Proxy uptime in seconds")
        lines.append("# TYPE finproxy_uptime_seconds gauge")
        lines.append(f"finproxy_uptime_seconds {round(time.time() - self._start_time, 2)}")

        return "\n".join(lines) + "\n"


def _get_collector(request: Request) -> MetricsCollector:
    return request.app.state.metrics


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(
    request: Request, collector: MetricsCollector = Depends(_get_collector)
) -> PlainTextResponse:
    """Prometheus-compatible metrics endpoint."""
    content = collector.get_prometheus_metrics(
        request.app.state.cache, request.app.state.rate_limiter
    )
    return PlainTextResponse(
        content=content, media_type="text/plain; version=0.0.4; charset=utf-8"
    )


@router.get("/stats")
async def proxy_stats(
    request: Request, collector: MetricsCollector = Depends(_get_collector)
) -> dict[str, Any]:
    """Proxy statistics: outcome counters, cache and rate limiter state."""
    return {
        **collector.get_summary(),
        "cache": request.app.state.cache.get_stats(),
        "rate_limiter": request.app.state.rate_limiter.get_stats(),
    }
