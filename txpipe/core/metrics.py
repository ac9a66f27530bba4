"""Request metrics: marker tokens and the Prometheus emitter."""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from txpipe.core.settings import get_settings

# Marker name shared by the request counter and the latency histogram
COUNT_MARKER = "count"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricToken:
    """Identifies a metric observation: what was measured and how it ended."""

    component: str
    action: str
    marker: str
    subaction: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return f"{self.component}_{self.action}_{self.marker}"

    def __str__(self) -> str:
        if self.subaction is None:
            return self.name
        return f"{self.name}_{self.subaction}"


def http_token(method: str, status_code: int) -> MetricToken:
    """Token for a completed HTTP request."""
    status = str(status_code)
    return MetricToken(
        component="http",
        action=method.lower(),
        marker=COUNT_MARKER,
        subaction=status,
        tags={"statusCode": status},
    )


def format_marker(token: MetricToken, elapsed_ms: int) -> str:
    """Render a token and its elapsed milliseconds for a log line."""
    return f"marker:{token}:{elapsed_ms}"


class MetricEmitter:
    """Records counter and histogram observations keyed by metric tokens.

    Metric families are created on first use, one per token name, with the
    token tags as labels. Emission failures are logged and never raised.
    """

    def __init__(
        self,
        registry: CollectorRegistry = REGISTRY,
        namespace: str = "txpipe",
        enabled: bool = True,
    ):
        self.registry = registry
        self.namespace = namespace
        self.enabled = enabled
        self._lock = threading.Lock()
        self._counters: dict[tuple[str, tuple[str, ...]], Counter] = {}
        self._histograms: dict[tuple[str, tuple[str, ...]], Histogram] = {}

    def emit_counter_metric(self, token: MetricToken) -> None:
        if not self.enabled:
            return
        try:
            self._labelled(self._counter(token), token).inc()
        except Exception:
            logger.warning("Failed to emit counter for %s", token, exc_info=True)

    def emit_histogram_metric(self, token: MetricToken, value: float) -> None:
        if not self.enabled:
            return
        try:
            self._labelled(self._histogram(token), token).observe(value)
        except Exception:
            logger.warning("Failed to emit histogram for %s", token, exc_info=True)

    @staticmethod
    def _labelled(metric, token: MetricToken):
        return metric.labels(**token.tags) if token.tags else metric

    def _counter(self, token: MetricToken) -> Counter:
        key = (token.name, tuple(sorted(token.tags)))
        with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                counter = Counter(
                    name=f"{self.namespace}_counter_{token.name}",
                    documentation=f"Number of {token.component} {token.action} observations",
                    labelnames=key[1],
                    registry=self.registry,
                )
                self._counters[key] = counter
        return counter

    def _histogram(self, token: MetricToken) -> Histogram:
        key = (token.name, tuple(sorted(token.tags)))
        with self._lock:
            histogram = self._histograms.get(key)
            if histogram is None:
                histogram = Histogram(
                    name=f"{self.namespace}_histogram_{token.name}_seconds",
                    documentation=f"Latency of {token.component} {token.action} in seconds",
                    labelnames=key[1],
                    registry=self.registry,
                )
                self._histograms[key] = histogram
        return histogram


@lru_cache
def get_metric_emitter() -> MetricEmitter:
    """Process-wide emitter backed by the default Prometheus registry."""
    return MetricEmitter(enabled=get_settings().metrics_enabled)
