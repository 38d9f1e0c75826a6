"""Observability: metric sinks fed by :class:`pigeon.ResilientClient`."""

from pigeon.observability.metrics import (
    InMemorySink,
    MetricKind,
    MetricSample,
    MetricsSink,
    PrometheusSink,
    create_sink,
)

__all__ = [
    "InMemorySink",
    "MetricKind",
    "MetricSample",
    "MetricsSink",
    "PrometheusSink",
    "create_sink",
]
