"""Discovery metrics emitted as structured log lines and, optionally, StatsD packets."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from typing import Any

from statsd import StatsClient

from app.config import settings

logger = logging.getLogger("app.metrics")


class MetricsReporter:
    """Emits counters, gauges and timings for discovery runs.

    Every sample is logged as ``discovery.metric`` with the payload under
    ``extra["metrics"]``. When the backend is ``statsd`` the sample is also
    forwarded over UDP. Gauges are never sampled so point-in-time values such
    as the number of unique leads stay exact.
    """

    def __init__(
        self,
        *,
        namespace: str = "discovery",
        backend: str = "stdout",
        disabled: bool = False,
        sample_rate: float = 1.0,
        default_tags: Mapping[str, Any] | None = None,
        statsd_client: StatsClient | None = None,
    ) -> None:
        self.namespace = namespace.strip(".") or "discovery"
        self.backend = backend.lower()
        self.disabled = disabled
        self.sample_rate = max(0.0, min(sample_rate, 1.0))
        self._default_tags = dict(default_tags or {})
        self._statsd = statsd_client if self.backend == "statsd" and not disabled else None

    @classmethod
    def from_settings(cls) -> MetricsReporter:
        backend = (settings.metrics_backend or "stdout").lower()
        statsd_client: StatsClient | None = None
        if backend == "statsd" and not settings.metrics_disable:
            try:
                statsd_client = StatsClient(
                    host=settings.metrics_statsd_host,
                    port=settings.metrics_statsd_port,
                    prefix="",
                )
            except OSError as exc:  # pragma: no cover - socket setup failure
                logger.warning("metrics.backend_error", extra={"backend": backend, "error": type(exc).__name__})
        return cls(
            namespace=settings.metrics_namespace,
            backend=backend,
            disabled=settings.metrics_disable,
            sample_rate=settings.metrics_sample_rate,
            default_tags={"environment": settings.environment},
            statsd_client=statsd_client,
        )

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._record("counter", metric, value, tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._record("gauge", metric, value, tags)

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._record("timing", metric, value_ms, tags)

    def qualified_name(self, metric: str) -> str:
        trimmed = (metric or "").strip(". ")
        if not trimmed:
            return self.namespace
        if trimmed == self.namespace or trimmed.startswith(f"{self.namespace}."):
            return trimmed
        return f"{self.namespace}.{trimmed}"

    def _record(
        self, metric_type: str, metric: str, value: float | None, tags: dict[str, Any] | None
    ) -> None:
        if self.disabled or value is None:
            return
        rate = 1.0 if metric_type == "gauge" else self.sample_rate
        if rate < 1.0 and secrets.randbelow(1_000_000) / 1_000_000 > rate:
            return

        name = self.qualified_name(metric)
        payload: dict[str, Any] = {
            "metric": name,
            "type": metric_type,
            "value": round(float(value), 4),
            "tags": {**self._default_tags, **(tags or {})},
        }
        if rate < 1.0:
            payload["sample_rate"] = round(rate, 4)
        logger.info("discovery.metric", extra={"metrics": payload})
        self._forward(metric_type, name, value, rate)

    def _forward(self, metric_type: str, name: str, value: float, rate: float) -> None:
        if self._statsd is None:
            return
        try:
            if metric_type == "counter":
                self._statsd.incr(name, value, rate=rate)
            elif metric_type == "gauge":
                self._statsd.gauge(name, value)
            else:
                self._statsd.timing(name, value, rate=rate)
        except OSError as exc:  # pragma: no cover - UDP send failure
            logger.warning(
                "metrics.backend_error",
                extra={"metric": name, "backend": self.backend, "error": type(exc).__name__},
            )


metrics = MetricsReporter.from_settings()
