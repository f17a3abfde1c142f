from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from . import keys
from .backends import MetricsStore, NotAnIntegerError, format_number
from .histogram import SUM_FIELD, bucket_field, cumulative_samples, normalize_buckets
from .metric_types import (
    COLLECT_ORDER,
    Command,
    CounterMetric,
    GaugeMetric,
    HistogramMetric,
    Metric,
    MetricKind,
    SummaryMetric,
)
from .records import CorruptedRecordError, MetaRecord, SampleRecord
from .samples import MetricFamily, Sample


logger = logging.getLogger(__name__)


def _log_corrupted(*, action: str, metric: str, expected: Sequence[str], actual: Optional[Sequence[str]], sample_key: str, reason: str) -> None:
    payload: dict[str, Any] = {
        "component": "storage_adapter",
        "event": "corrupted_sample",
        "action": action,
        "metric": metric,
        "expected_labels": list(expected),
        "actual_values": list(actual) if actual is not None else None,
        "sample_key": sample_key,
        "reason": reason,
    }
    logger.warning(
        "Prometheus: corrupted sample %s",
        json.dumps(payload, sort_keys=True, separators=(",", ":")),
        extra={"prometheus": payload},
    )


class StorageAdapter:
    """
    Encodes metric updates into a shared hash store and rebuilds metric
    families from it.

    Writers never read before writing: every mutation is a single atomic
    store primitive, so concurrent processes can increment the same sample.
    Collection degrades per sample; one bad record never fails a scrape.
    """

    def __init__(self, store: MetricsStore, *, auto_clean_corrupted: bool = True) -> None:
        self._store = store
        self._auto_clean = bool(auto_clean_corrupted)

    @property
    def store(self) -> MetricsStore:
        return self._store

    # Write path.

    def update(
        self,
        metric: Metric,
        label_values: Sequence[Any],
        value: float,
        *,
        command: Optional[Command] = None,
        timestamp: Optional[int] = None,
    ) -> None:
        if isinstance(metric, SummaryMetric):
            raise NotImplementedError("Summary metrics are not yet implemented")

        values = [str(v) for v in label_values]
        meta = MetaRecord(
            name=metric.name,
            help=metric.help,
            label_names=list(metric.label_names),
            buckets=list(normalize_buckets(metric.buckets)) if isinstance(metric, HistogramMetric) else None,
        )
        mkey = keys.meta_key(metric.kind.value, metric.name)
        skey = keys.sample_key(metric.kind.value, metric.name, values)

        self._store.hset(mkey, meta.to_fields())

        if isinstance(metric, HistogramMetric):
            self._store.hincrby(skey, bucket_field(value, meta.buckets or ()), 1)
            self._store.hincrbyfloat(skey, SUM_FIELD, float(value))
        elif isinstance(metric, CounterMetric):
            cmd = command or Command.INCREMENT_INTEGER
            if cmd is Command.SET:
                raise ValueError(f"counter {metric.name} cannot be set, only incremented")
            self._increment(skey, cmd, value)
        elif isinstance(metric, GaugeMetric):
            cmd = command or Command.SET
            if cmd is Command.SET:
                self._store.hset(skey, {"value": format_number(value)})
            else:
                self._increment(skey, cmd, value)
        else:
            raise TypeError(f"unsupported metric type: {type(metric).__name__}")

        fields: dict[str, Any] = {"labelValues": keys.encode_label_values(values)}
        if timestamp is not None:
            fields["timestamp"] = int(timestamp)
        self._store.hset(skey, fields)

    def _increment(self, skey: str, cmd: Command, value: float) -> None:
        if cmd is Command.INCREMENT_FLOAT:
            self._store.hincrbyfloat(skey, "value", float(value))
        else:
            try:
                self._store.hincrby(skey, "value", int(value))
            except NotAnIntegerError:
                # The sample already holds a float (an earlier SET or float increment).
                self._store.hincrbyfloat(skey, "value", float(int(value)))

    def update_counter(self, metric: CounterMetric, label_values: Sequence[Any], value: float, **kwargs: Any) -> None:
        self.update(metric, label_values, value, **kwargs)

    def update_gauge(self, metric: GaugeMetric, label_values: Sequence[Any], value: float, **kwargs: Any) -> None:
        self.update(metric, label_values, value, **kwargs)

    def update_histogram(self, metric: HistogramMetric, label_values: Sequence[Any], value: float, **kwargs: Any) -> None:
        self.update(metric, label_values, value, **kwargs)

    def update_summary(self, metric: SummaryMetric, label_values: Sequence[Any], value: float, **kwargs: Any) -> None:
        raise NotImplementedError("Summary metrics are not yet implemented")

    # Read path.

    def collect(self, sort_by_name: bool = True) -> list[MetricFamily]:
        families: list[MetricFamily] = []
        for kind in COLLECT_ORDER:
            families.extend(self._collect_kind(kind))
        if sort_by_name:
            families.sort(key=lambda f: f.name)
        return families

    def _logical(self, raw_key: str) -> str:
        return keys.strip_transport_prefix(raw_key, self._store.key_prefix)

    def _collect_kind(self, kind: MetricKind) -> list[MetricFamily]:
        out: list[MetricFamily] = []
        for raw_meta_key in sorted(self._store.keys(keys.meta_pattern(kind.value))):
            mkey = self._logical(raw_meta_key)
            fields = self._store.hgetall(mkey)
            if not fields:
                continue
            try:
                meta = MetaRecord.from_fields(fields)
            except CorruptedRecordError as e:
                logger.warning("Prometheus: skipping undecodable meta record %s: %s", mkey, e)
                continue

            samples = self._collect_samples(kind, mkey, meta)
            if samples:
                out.append(
                    MetricFamily(
                        name=meta.name,
                        type=kind.value,
                        help=meta.help,
                        label_names=tuple(meta.label_names),
                        samples=tuple(samples),
                    )
                )
        return out

    def _collect_samples(self, kind: MetricKind, mkey: str, meta: MetaRecord) -> list[Sample]:
        base = keys.base_key(mkey)
        decoded: list[tuple[tuple[str, ...], SampleRecord]] = []
        for raw_key in self._store.keys(base + ":*"):
            skey = self._logical(raw_key)
            if not keys.is_sample_key(base, skey):
                continue
            fields = self._store.hgetall(skey)
            if not fields:
                continue
            try:
                record = SampleRecord.from_fields(fields)
            except CorruptedRecordError as e:
                self._handle_corrupted(meta, None, skey, reason=str(e))
                continue
            if record.label_values is None:
                # labelValues lands after the value increment; nothing to report yet.
                continue
            if len(record.label_values) != len(meta.label_names):
                self._handle_corrupted(meta, record.label_values, skey, reason="label count mismatch")
                continue
            decoded.append((tuple(record.label_values), record))

        decoded.sort(key=lambda item: item[0])
        samples: list[Sample] = []
        for values, record in decoded:
            if kind is MetricKind.HISTOGRAM:
                samples.extend(cumulative_samples(meta.name, values, meta.buckets or (), record, record.timestamp))
            else:
                samples.append(
                    Sample(
                        name=meta.name,
                        label_names=(),
                        label_values=values,
                        value=record.value,
                        timestamp=record.timestamp,
                    )
                )
        return samples

    def _handle_corrupted(self, meta: MetaRecord, actual: Optional[Sequence[str]], skey: str, *, reason: str) -> None:
        action = "skipped"
        if self._auto_clean:
            self._store.delete(skey)
            action = "deleted"
        _log_corrupted(
            action=action,
            metric=meta.name,
            expected=meta.label_names,
            actual=actual,
            sample_key=skey,
            reason=reason,
        )

    # Maintenance.

    def wipe(self) -> None:
        raw = self._store.keys(keys.PREFIX + "*")
        if not raw:
            return
        self._store.delete(*(self._logical(k) for k in raw))
