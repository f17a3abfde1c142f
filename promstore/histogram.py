from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

from .records import SampleRecord
from .samples import Sample


DEFAULT_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.075,
    0.1,
    0.25,
    0.5,
    0.75,
    1.0,
    2.5,
    5.0,
    7.5,
    10.0,
)

INF_FIELD = "bucket_inf"
SUM_FIELD = "sum"


def format_boundary(b: float) -> str:
    x = float(b)
    if x.is_integer():
        return str(int(x))
    return repr(x)


def boundary_field(b: float) -> str:
    return f"bucket_{format_boundary(b)}"


def normalize_buckets(buckets: Iterable[float]) -> tuple[float, ...]:
    out = sorted(float(b) for b in buckets)
    if not out:
        raise ValueError("histogram must have at least one bucket")
    for b in out:
        if not math.isfinite(b):
            raise ValueError(f"histogram bucket boundaries must be finite, got {b!r}")
    for lo, hi in zip(out, out[1:]):
        if lo == hi:
            raise ValueError(f"duplicate histogram bucket boundary {format_boundary(lo)}")
    return tuple(out)


def bucket_field(value: float, buckets: Sequence[float]) -> str:
    x = float(value)
    for b in buckets:
        if x <= float(b):
            return boundary_field(b)
    return INF_FIELD


def cumulative_samples(
    name: str,
    label_values: Sequence[str],
    buckets: Sequence[float],
    record: SampleRecord,
    timestamp: Optional[int] = None,
) -> list[Sample]:
    """
    Expand one stored histogram record into exposition samples.

    Emits `<name>_bucket` per boundary (running totals, extra `le` label),
    the `+Inf` bucket, then `<name>_sum` and `<name>_count`.
    """
    values = tuple(label_values)
    out: list[Sample] = []
    running = 0
    for b in buckets:
        running += record.count_field(boundary_field(b))
        out.append(
            Sample(
                name=f"{name}_bucket",
                label_names=("le",),
                label_values=values + (format_boundary(b),),
                value=running,
                timestamp=timestamp,
            )
        )
    running += record.count_field(INF_FIELD)
    out.append(
        Sample(
            name=f"{name}_bucket",
            label_names=("le",),
            label_values=values + ("+Inf",),
            value=running,
            timestamp=timestamp,
        )
    )
    out.append(Sample(name=f"{name}_sum", label_names=(), label_values=values, value=record.sum, timestamp=timestamp))
    out.append(Sample(name=f"{name}_count", label_names=(), label_values=values, value=running, timestamp=timestamp))
    return out
