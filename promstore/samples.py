from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Union


Number = Union[int, float]

# Integral floats beyond this print in exponent form rather than as long digit runs.
_MAX_PLAIN_INT = 1e15


def format_value(value: Number) -> str:
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    x = float(value)
    if math.isinf(x):
        return "+Inf" if x > 0 else "-Inf"
    if math.isnan(x):
        return "NaN"
    if x.is_integer() and abs(x) < _MAX_PLAIN_INT:
        return str(int(x))
    return repr(x)


@dataclass(frozen=True, slots=True)
class Sample:
    """
    One exposition line.

    `label_names` holds only the names specific to this sample (e.g. `le`);
    the family's names come first in `label_values`.
    """

    name: str
    label_names: tuple[str, ...]
    label_values: tuple[str, ...]
    value: Number
    timestamp: Optional[int] = None

    def has_label_names(self) -> bool:
        return len(self.label_names) > 0

    def has_timestamp(self) -> bool:
        return self.timestamp is not None

    def formatted_value(self) -> str:
        return format_value(self.value)


@dataclass(frozen=True, slots=True)
class MetricFamily:
    name: str
    type: str
    help: str
    label_names: tuple[str, ...]
    samples: tuple[Sample, ...] = ()

    def has_label_names(self) -> bool:
        return len(self.label_names) > 0
