# === NAVMAP v1 ===
# {
#   "module": "pigeon.observability.metrics",
#   "purpose": "Metric sinks for client latency, throughput, status and retry counters",
#   "sections": [
#     {
#       "id": "metrickind",
#       "name": "MetricKind",
#       "anchor": "class-metrickind",
#       "kind": "class"
#     },
#     {
#       "id": "metricssink",
#       "name": "MetricsSink",
#       "anchor": "class-metricssink",
#       "kind": "class"
#     },
#     {
#       "id": "inmemorysink",
#       "name": "InMemorySink",
#       "anchor": "class-inmemorysink",
#       "kind": "class"
#     },
#     {
#       "id": "prometheussink",
#       "name": "PrometheusSink",
#       "anchor": "class-prometheussink",
#       "kind": "class"
#     },
#     {
#       "id": "create-sink",
#       "name": "create_sink",
#       "anchor": "function-create-sink",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Metric sinks.

:class:`pigeon.ResilientClient` reports through a single call,
``sink.emit(name, kind, value, tags)``:

==========================  ==========  ========================
Metric                      Kind        Tags
==========================  ==========  ========================
``<name>_latency``          histogram   ``host``
``<name>_throughput``       increment   ``host``
``<name>_status``           increment   ``host``, ``code``
``<name>_retry``            increment   ``host``, ``error``
==========================  ==========  ========================

Two sinks ship: :class:`InMemorySink` (tests and introspection) and
:class:`PrometheusSink`, which maps each metric name onto a lazily created
``prometheus_client`` Counter or Histogram.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Protocol, Tuple, Union

from prometheus_client import CollectorRegistry, Counter, Histogram

from pigeon.errors import InvalidArgument

logger = logging.getLogger(__name__)

#: Latency buckets in seconds
LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricKind(str, Enum):
    INCREMENT = "increment"
    COUNT = "count"
    HISTOGRAM = "histogram"


class MetricsSink(Protocol):
    """Anything that accepts metric emissions."""

    def emit(
        self, name: str, kind: MetricKind, value: float, tags: Mapping[str, str]
    ) -> None: ...


# ============================================================================
# In-memory sink
# ============================================================================


@dataclass(frozen=True)
class MetricSample:
    name: str
    kind: MetricKind
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)


class InMemorySink:
    """Keeps every emission in a list."""

    def __init__(self) -> None:
        self._samples: List[MetricSample] = []
        self._lock = threading.Lock()

    def emit(self, name: str, kind: MetricKind, value: float, tags: Mapping[str, str]) -> None:
        with self._lock:
            self._samples.append(MetricSample(name, MetricKind(kind), float(value), dict(tags)))

    def samples(self, name: Optional[str] = None) -> List[MetricSample]:
        with self._lock:
            return [s for s in self._samples if name is None or s.name == name]

    def total(self, name: str, **tags: str) -> float:
        """Sum of values for ``name`` whose tags include every ``tags`` item."""
        return sum(
            s.value
            for s in self.samples(name)
            if all(s.tags.get(k) == v for k, v in tags.items())
        )

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


# ============================================================================
# Prometheus sink
# ============================================================================

_INVALID_METRIC_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def metric_name(name: str, namespace: Optional[str] = None) -> str:
    """Sanitize ``name`` into a valid Prometheus metric name."""
    cleaned = _INVALID_METRIC_CHARS.sub("_", name)
    if namespace:
        cleaned = f"{_INVALID_METRIC_CHARS.sub('_', namespace)}_{cleaned}"
    if cleaned[:1].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


class PrometheusSink:
    """Maps emissions onto ``prometheus_client`` metrics.

    Counters back ``increment``/``count`` emissions and histograms back
    ``histogram`` emissions. Tag keys become label names, fixed by the first
    emission of each metric.

    Args:
        registry: Collector registry to register into. A private one by
            default, so several clients never collide on the global registry.
        namespace: Optional metric name prefix.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        namespace: Optional[str] = None,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.namespace = namespace
        self._metrics: Dict[str, Tuple[Union[Counter, Histogram], Tuple[str, ...]]] = {}
        self._lock = threading.Lock()

    def emit(self, name: str, kind: MetricKind, value: float, tags: Mapping[str, str]) -> None:
        kind = MetricKind(kind)
        metric, labelnames = self._metric_for(name, kind, tuple(sorted(tags)))
        child = metric.labels(**{label: str(tags[label]) for label in labelnames})
        if kind is MetricKind.HISTOGRAM:
            child.observe(value)
        elif kind is MetricKind.INCREMENT:
            child.inc()
        else:
            child.inc(value)

    def _metric_for(self, name: str, kind: MetricKind, labelnames: Tuple[str, ...]):
        key = f"{kind.value}:{name}"
        with self._lock:
            entry = self._metrics.get(key)
            if entry is None:
                full_name = metric_name(name, self.namespace)
                if kind is MetricKind.HISTOGRAM:
                    metric = Histogram(
                        full_name,
                        f"{name} (seconds)",
                        labelnames,
                        registry=self.registry,
                        buckets=LATENCY_BUCKETS,
                    )
                else:
                    metric = Counter(full_name, name, labelnames, registry=self.registry)
                entry = (metric, labelnames)
                self._metrics[key] = entry
        if entry[1] != labelnames:
            raise ValueError(
                f"metric {name!r} emitted with labels {labelnames}, registered with {entry[1]}"
            )
        return entry


# ============================================================================
# Factory
# ============================================================================

SINK_SELECTORS = ("memory", "prometheus")


def create_sink(selector: str) -> MetricsSink:
    """Build a sink from its selector (``memory`` or ``prometheus``)."""
    if selector == "memory":
        return InMemorySink()
    if selector == "prometheus":
        return PrometheusSink()
    raise InvalidArgument(f"unknown metrics sink {selector!r}; expected one of {SINK_SELECTORS}")


__all__ = [
    "LATENCY_BUCKETS",
    "MetricKind",
    "MetricsSink",
    "MetricSample",
    "InMemorySink",
    "PrometheusSink",
    "SINK_SELECTORS",
    "create_sink",
    "metric_name",
]
