from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


BUCKET_FIELD_PREFIX = "bucket_"


class CorruptedRecordError(ValueError):
    """A stored hash could not be decoded into a meta or sample record."""


def _json_list(v: Any) -> Any:
    if isinstance(v, (str, bytes)):
        v = json.loads(v)
    if v is not None and not isinstance(v, list):
        raise ValueError(f"expected a JSON list, got {type(v).__name__}")
    return v


class MetaRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    name: str
    help: str = ""
    label_names: list[str] = Field(default_factory=list, alias="labelNames")
    buckets: Optional[list[float]] = None

    @field_validator("label_names", "buckets", mode="before")
    @classmethod
    def _decode_json(cls, v: Any) -> Any:
        return _json_list(v)

    def to_fields(self) -> dict[str, str]:
        fields = {
            "name": self.name,
            "help": self.help,
            "labelNames": json.dumps(list(self.label_names), separators=(",", ":")),
        }
        if self.buckets is not None:
            fields["buckets"] = json.dumps(list(self.buckets), separators=(",", ":"))
        return fields

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "MetaRecord":
        try:
            return cls.model_validate(dict(fields))
        except ValidationError as e:
            raise CorruptedRecordError(f"invalid meta record: {e.error_count()} error(s)") from e


class SampleRecord(BaseModel):
    """
    Decoded sample hash.

    `label_values` is None when the hash exists but its labelValues field has
    not been written yet (a write in progress), which is not corruption.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    label_values: Optional[list[str]] = Field(default=None, alias="labelValues")
    value: Union[int, float] = 0
    timestamp: Optional[int] = None
    sum: float = 0.0
    bucket_counts: dict[str, int] = Field(default_factory=dict)

    @field_validator("label_values", mode="before")
    @classmethod
    def _decode_label_values(cls, v: Any) -> Any:
        v = _json_list(v)
        if v is None:
            return None
        return [str(x) for x in v]

    @field_validator("value", mode="before")
    @classmethod
    def _parse_value(cls, v: Any) -> Any:
        # Counters stay exact integers; float("9007199254740993") would round.
        if isinstance(v, (str, bytes)):
            text = v.decode() if isinstance(v, bytes) else v
            try:
                return int(text)
            except ValueError:
                return float(text)
        return v

    def count_field(self, field: str) -> int:
        return int(self.bucket_counts.get(field, 0))

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "SampleRecord":
        data: dict[str, Any] = {}
        counts: dict[str, Any] = {}
        for k, v in fields.items():
            if k.startswith(BUCKET_FIELD_PREFIX):
                counts[k] = v
            else:
                data[k] = v
        data["bucket_counts"] = counts
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise CorruptedRecordError(f"invalid sample record: {e.error_count()} error(s)") from e
