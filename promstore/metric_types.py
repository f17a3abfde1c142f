from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union


class MetricKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"


# Scan order used by collect().
COLLECT_ORDER = (MetricKind.GAUGE, MetricKind.COUNTER, MetricKind.HISTOGRAM, MetricKind.SUMMARY)


class Command(str, Enum):
    SET = "set"
    INCREMENT_INTEGER = "increment_integer"
    INCREMENT_FLOAT = "increment_float"


@dataclass(frozen=True, slots=True)
class CounterMetric:
    kind: ClassVar[MetricKind] = MetricKind.COUNTER
    name: str
    help: str
    label_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class GaugeMetric:
    kind: ClassVar[MetricKind] = MetricKind.GAUGE
    name: str
    help: str
    label_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class HistogramMetric:
    kind: ClassVar[MetricKind] = MetricKind.HISTOGRAM
    name: str
    help: str
    label_names: tuple[str, ...] = ()
    buckets: tuple[float, ...] = ()


@dataclass(frozen=True, slots=True)
class SummaryMetric:
    kind: ClassVar[MetricKind] = MetricKind.SUMMARY
    name: str
    help: str
    label_names: tuple[str, ...] = ()


Metric = Union[CounterMetric, GaugeMetric, HistogramMetric, SummaryMetric]
