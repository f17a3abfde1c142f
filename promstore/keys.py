from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Sequence


PREFIX = "PROMETHEUS_"
META_SUFFIX = ":meta"

_DIGEST_RE = re.compile(r"^[0-9a-f]{32}$")


def encode_label_values(label_values: Sequence[Any]) -> str:
    # Compact JSON, values coerced to str so 200 and "200" share a key.
    return json.dumps([str(v) for v in label_values], separators=(",", ":"), ensure_ascii=True)


def decode_label_values(raw: str) -> list[str]:
    values = json.loads(raw)
    if not isinstance(values, list):
        raise ValueError(f"label values must be a JSON list, got {type(values).__name__}")
    return [str(v) for v in values]


def label_digest(label_values: Sequence[Any]) -> str:
    return hashlib.md5(encode_label_values(label_values).encode("utf-8")).hexdigest()


def meta_key(kind: str, name: str) -> str:
    return f"{PREFIX}{kind}:{name}{META_SUFFIX}"


def sample_key(kind: str, name: str, label_values: Sequence[Any]) -> str:
    return f"{PREFIX}{kind}:{name}:{label_digest(label_values)}"


def meta_pattern(kind: str) -> str:
    return f"{PREFIX}{kind}:*{META_SUFFIX}"


def base_key(meta: str) -> str:
    if meta.endswith(META_SUFFIX):
        return meta[: -len(META_SUFFIX)]
    return meta


def is_sample_key(base: str, key: str) -> bool:
    """
    True only for `<base>:<digest>`.

    A scan of `<base>:*` also returns the meta key and the keys of any metric
    whose name extends `<name>:`; both are rejected here.
    """
    head = base + ":"
    if not key.startswith(head):
        return False
    return _DIGEST_RE.match(key[len(head):]) is not None


def strip_transport_prefix(key: str, transport_prefix: str) -> str:
    """
    Map a physical key returned by a scan back to its logical form.

    - Empty transport prefix -> key unchanged.
    - Only `<transport_prefix>PROMETHEUS_...` is stripped, so applying this to
      an already-logical key is a no-op.
    """
    if not transport_prefix:
        return key
    if key.startswith(transport_prefix + PREFIX):
        return key[len(transport_prefix):]
    return key
