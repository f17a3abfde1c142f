from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, Sequence, TypeVar

from .adapter import StorageAdapter
from .backends import build_store
from .config import PrometheusConfig
from .histogram import DEFAULT_BUCKETS, normalize_buckets
from .metric_types import (
    Command,
    CounterMetric,
    GaugeMetric,
    HistogramMetric,
    Metric,
    SummaryMetric,
)
from .render import MIME_TYPE, render_text
from .samples import MetricFamily


logger = logging.getLogger(__name__)

_B = TypeVar("_B", bound="_Builder")

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class LabelMismatchPolicy(str, Enum):
    THROW = "throw"
    LOG = "log"
    IGNORE = "ignore"


class LabelCountError(ValueError):
    pass


def now_ms() -> int:
    return int(time.time() * 1000)


def _validate_names(name: str, label_names: Sequence[str], *, histogram: bool) -> None:
    if not _METRIC_NAME_RE.match(name):
        raise ValueError(f"invalid metric name: {name!r}")
    seen: set[str] = set()
    for label in label_names:
        if not _LABEL_NAME_RE.match(label) or label.startswith("__"):
            raise ValueError(f"invalid label name {label!r} for metric {name}")
        if histogram and label == "le":
            raise ValueError(f"histogram {name} cannot have a label named 'le'")
        if label in seen:
            raise ValueError(f"duplicate label name {label!r} for metric {name}")
        seen.add(label)


@dataclass(frozen=True, slots=True)
class _Builder:
    metric: Metric
    adapter: StorageAdapter
    policy: LabelMismatchPolicy
    timestamp: Optional[int] = None

    def with_timestamp(self: _B, timestamp_ms: Optional[int] = None) -> _B:
        """Copy of this builder whose writes carry a timestamp (default: now)."""
        return replace(self, timestamp=now_ms() if timestamp_ms is None else int(timestamp_ms))

    def _labels_ok(self, label_values: Sequence[Any]) -> bool:
        names = self.metric.label_names
        if len(names) == len(label_values):
            return True
        message = (
            f'Label count mismatch for metric "{self.metric.name}": expected {len(names)} labels '
            f"({', '.join(names)}) but got {len(label_values)} values "
            f"({', '.join(str(v) for v in label_values)})"
        )
        if self.policy is LabelMismatchPolicy.THROW:
            raise LabelCountError(message)
        if self.policy is LabelMismatchPolicy.LOG:
            logger.warning("Prometheus: %s", message)
        return False

    def _write(self, label_values: Sequence[Any], value: float, command: Optional[Command]) -> None:
        if not self._labels_ok(label_values):
            return
        self.adapter.update(self.metric, label_values, value, command=command, timestamp=self.timestamp)


class CounterBuilder(_Builder):
    def inc(self, label_values: Sequence[Any] = ()) -> None:
        self.inc_by(1, label_values)

    def inc_by(self, value: float, label_values: Sequence[Any] = ()) -> None:
        if value < 0:
            raise ValueError(f"counter {self.metric.name} cannot be decremented (got {value})")
        command = Command.INCREMENT_FLOAT if isinstance(value, float) else Command.INCREMENT_INTEGER
        self._write(label_values, value, command)


class GaugeBuilder(_Builder):
    def set(self, value: float, label_values: Sequence[Any] = ()) -> None:
        self._write(label_values, value, Command.SET)

    def inc(self, label_values: Sequence[Any] = ()) -> None:
        self.inc_by(1, label_values)

    def inc_by(self, value: float, label_values: Sequence[Any] = ()) -> None:
        self._write(label_values, value, Command.INCREMENT_FLOAT)

    def dec(self, label_values: Sequence[Any] = ()) -> None:
        self.dec_by(1, label_values)

    def dec_by(self, value: float, label_values: Sequence[Any] = ()) -> None:
        self.inc_by(-value, label_values)


class HistogramBuilder(_Builder):
    def observe(self, value: float, label_values: Sequence[Any] = ()) -> None:
        self._write(label_values, float(value), None)


class SummaryBuilder(_Builder):
    def observe(self, value: float, label_values: Sequence[Any] = ()) -> None:
        raise NotImplementedError("Summary metrics are not yet implemented")


@dataclass(frozen=True, slots=True)
class _GaugeCallback:
    metric: GaugeMetric
    callback: Callable[[], float]
    label_values: tuple[str, ...]


class MetricsRegistry:
    """
    Entry point for application code.

    Holds metric definitions, hands out per-metric builders and renders the
    accumulated state. Usage:

        registry.counter("requests_total", "Total requests", ["method"]).inc(["GET"])
        registry.histogram("latency_seconds", "Latency").with_timestamp().observe(0.2)
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        *,
        namespace: str = "app",
        label_mismatch: str = "throw",
        render_strict: bool = True,
    ) -> None:
        self._adapter = adapter
        self._namespace = (namespace or "").strip()
        self._policy = LabelMismatchPolicy(label_mismatch)
        self._render_strict = bool(render_strict)
        self._lock = threading.Lock()
        self._metrics: dict[str, Metric] = {}
        self._gauge_callbacks: list[_GaugeCallback] = []

    @property
    def adapter(self) -> StorageAdapter:
        return self._adapter

    @property
    def content_type(self) -> str:
        return MIME_TYPE

    def full_name(self, name: str) -> str:
        if not self._namespace:
            return name
        return f"{self._namespace}_{name}"

    def _get_or_register(self, metric: Metric) -> Metric:
        with self._lock:
            existing = self._metrics.get(metric.name)
            if existing is None:
                self._metrics[metric.name] = metric
                return metric
        if type(existing) is not type(metric):
            raise ValueError(f"metric {metric.name} already registered as {existing.kind.value}")
        if existing.label_names != metric.label_names:
            raise ValueError(
                f"metric {metric.name} already registered with labels ({', '.join(existing.label_names)})"
            )
        if isinstance(existing, HistogramMetric) and isinstance(metric, HistogramMetric) and existing.buckets != metric.buckets:
            raise ValueError(f"histogram {metric.name} already registered with different buckets")
        return existing

    def counter(self, name: str, help: str, label_names: Sequence[str] = ()) -> CounterBuilder:
        full = self.full_name(name)
        _validate_names(full, label_names, histogram=False)
        metric = self._get_or_register(CounterMetric(name=full, help=help, label_names=tuple(label_names)))
        return CounterBuilder(metric=metric, adapter=self._adapter, policy=self._policy)

    def gauge(self, name: str, help: str, label_names: Sequence[str] = ()) -> GaugeBuilder:
        full = self.full_name(name)
        _validate_names(full, label_names, histogram=False)
        metric = self._get_or_register(GaugeMetric(name=full, help=help, label_names=tuple(label_names)))
        return GaugeBuilder(metric=metric, adapter=self._adapter, policy=self._policy)

    def histogram(
        self,
        name: str,
        help: str,
        label_names: Sequence[str] = (),
        buckets: Optional[Sequence[float]] = None,
    ) -> HistogramBuilder:
        full = self.full_name(name)
        _validate_names(full, label_names, histogram=True)
        resolved = normalize_buckets(DEFAULT_BUCKETS if buckets is None else buckets)
        metric = self._get_or_register(
            HistogramMetric(name=full, help=help, label_names=tuple(label_names), buckets=resolved)
        )
        return HistogramBuilder(metric=metric, adapter=self._adapter, policy=self._policy)

    def summary(self, name: str, help: str, label_names: Sequence[str] = ()) -> SummaryBuilder:
        full = self.full_name(name)
        _validate_names(full, label_names, histogram=False)
        metric = self._get_or_register(SummaryMetric(name=full, help=help, label_names=tuple(label_names)))
        return SummaryBuilder(metric=metric, adapter=self._adapter, policy=self._policy)

    def register_gauge_callback(
        self,
        name: str,
        help: str,
        callback: Callable[[], float],
        label_names: Sequence[str] = (),
        label_values: Sequence[Any] = (),
    ) -> None:
        """Register a gauge whose value is read from `callback` on every render()."""
        builder = self.gauge(name, help, label_names)
        if len(label_values) != len(builder.metric.label_names):
            raise LabelCountError(
                f"gauge callback {builder.metric.name} expects {len(builder.metric.label_names)} label values"
            )
        with self._lock:
            self._gauge_callbacks.append(
                _GaugeCallback(
                    metric=builder.metric,
                    callback=callback,
                    label_values=tuple(str(v) for v in label_values),
                )
            )

    def _run_gauge_callbacks(self) -> None:
        with self._lock:
            callbacks = list(self._gauge_callbacks)
        for cb in callbacks:
            try:
                value = float(cb.callback())
                self._adapter.update(cb.metric, cb.label_values, value, command=Command.SET)
            except Exception:
                logger.exception("Prometheus: gauge callback for %s failed", cb.metric.name)

    def collect(self) -> list[MetricFamily]:
        return self._adapter.collect()

    def render(self, *, strict: Optional[bool] = None) -> str:
        self._run_gauge_callbacks()
        return render_text(self.collect(), strict=self._render_strict if strict is None else strict)

    def wipe(self) -> None:
        self._adapter.wipe()


def build_registry(cfg: Optional[PrometheusConfig] = None) -> MetricsRegistry:
    cfg = cfg or PrometheusConfig.from_env()
    store = build_store(
        cfg.storage,
        redis_url=cfg.redis_url,
        key_prefix=cfg.redis_key_prefix,
        socket_timeout_s=cfg.redis_socket_timeout_ms / 1000.0,
    )
    adapter = StorageAdapter(store, auto_clean_corrupted=cfg.auto_clean_corrupted)
    return MetricsRegistry(
        adapter,
        namespace=cfg.namespace,
        label_mismatch=cfg.label_mismatch,
        render_strict=cfg.render_strict,
    )
