from __future__ import annotations

import json
from typing import Iterable

from .samples import MetricFamily, Sample


MIME_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class LabelMismatchError(RuntimeError):
    pass


def escape_label_value(v: str) -> str:
    # Backslash first so the escapes added below are not doubled.
    return str(v).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def escape_help(v: str) -> str:
    return str(v).replace("\\", "\\\\").replace("\n", "\\n")


def _label_mismatch_message(family: MetricFamily, names: list[str], values: tuple[str, ...]) -> str:
    return (
        f'Label mismatch for metric "{family.name}": expected {len(names)} labels ({", ".join(names)}) '
        f"but got {len(values)} values ({', '.join(str(v) for v in values)}). "
        "This usually means the metric was created with different labels than when it was last stored. "
        "Try wiping Prometheus data with ?wipe=1."
    )


def render_sample(family: MetricFamily, sample: Sample) -> str:
    names = list(family.label_names) + list(sample.label_names)
    values = sample.label_values
    if len(names) != len(values):
        raise LabelMismatchError(_label_mismatch_message(family, names, values))

    if names:
        labels = ",".join(f'{n}="{escape_label_value(v)}"' for n, v in zip(names, values))
        line = f"{sample.name}{{{labels}}} {sample.formatted_value()}"
    else:
        line = f"{sample.name} {sample.formatted_value()}"

    if sample.has_timestamp():
        line += f" {int(sample.timestamp)}"
    return line


def render_text(families: Iterable[MetricFamily], *, strict: bool = True) -> str:
    """
    Serialize metric families into the Prometheus text format.

    Families are emitted in name order so identical state renders to
    identical bytes. With strict=False a sample whose label count does not
    match is written as a `#` comment block and rendering carries on.
    """
    lines: list[str] = []
    for family in sorted(families, key=lambda f: f.name):
        lines.append(f"# HELP {family.name} {escape_help(family.help)}")
        lines.append(f"# TYPE {family.name} {family.type}")
        for sample in family.samples:
            try:
                lines.append(render_sample(family, sample))
            except LabelMismatchError as e:
                if strict:
                    raise
                lines.append("# Error: " + str(e).replace("\n", "\\n"))
                lines.append("#   Labels: " + json.dumps(list(family.label_names) + list(sample.label_names)))
                lines.append("#   Values: " + json.dumps(list(sample.label_values)))
    return "\n".join(lines) + "\n"
