from .adapter import StorageAdapter
from .backends import InMemoryStore, MetricsStore, RedisStore
from .metric_types import Command, CounterMetric, GaugeMetric, HistogramMetric, MetricKind, SummaryMetric
from .registry import LabelCountError, MetricsRegistry, build_registry
from .render import MIME_TYPE, LabelMismatchError, render_text
from .samples import MetricFamily, Sample

__all__ = [
    "StorageAdapter",
    "InMemoryStore",
    "MetricsStore",
    "RedisStore",
    "Command",
    "CounterMetric",
    "GaugeMetric",
    "HistogramMetric",
    "MetricKind",
    "SummaryMetric",
    "LabelCountError",
    "MetricsRegistry",
    "build_registry",
    "MIME_TYPE",
    "LabelMismatchError",
    "render_text",
    "MetricFamily",
    "Sample",
]
