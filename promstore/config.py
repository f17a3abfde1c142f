from __future__ import annotations

import os
from dataclasses import dataclass


def _getenv_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _getenv_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw


@dataclass(frozen=True, slots=True)
class PrometheusConfig:
    # Endpoint
    enabled: bool = True
    route: str = "prometheus"
    allowed_ips: str = ""  # comma-separated IPs/CIDRs; empty allows all
    trusted_proxy_cidrs: str = ""

    # Metric naming
    namespace: str = "app"

    # Storage
    storage: str = "redis"  # redis | memory
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = ""
    redis_socket_timeout_ms: int = 2000

    # Wipe policy
    auto_wipe: bool = False  # takes precedence over the wipe param
    wipe_param_enabled: bool = True
    wipe_param: str = "wipe"
    wipe_value: str = "1"

    # Data hygiene
    label_mismatch: str = "throw"  # throw | log | ignore
    auto_clean_corrupted: bool = True
    render_strict: bool = False

    @staticmethod
    def from_env() -> "PrometheusConfig":
        route = _getenv_str("PROMETHEUS_ROUTE", "prometheus").strip().strip("/")
        if not route:
            route = "prometheus"
        storage = _getenv_str("PROMETHEUS_STORAGE", "redis").strip().lower()
        if storage not in {"redis", "memory"}:
            storage = "redis"
        label_mismatch = _getenv_str("PROMETHEUS_LABEL_MISMATCH_BEHAVIOR", "throw").strip().lower()
        if label_mismatch not in {"throw", "log", "ignore"}:
            label_mismatch = "throw"

        return PrometheusConfig(
            enabled=_getenv_bool("PROMETHEUS_ENABLED", True),
            route=route,
            allowed_ips=_getenv_str("PROMETHEUS_ALLOWED_IPS", ""),
            trusted_proxy_cidrs=_getenv_str("PROMETHEUS_TRUSTED_PROXY_CIDRS", ""),
            # An explicitly empty namespace is allowed.
            namespace=os.getenv("PROMETHEUS_NAMESPACE", "app").strip(),
            storage=storage,
            redis_url=_getenv_str("PROMETHEUS_REDIS_URL", "redis://localhost:6379/0"),
            redis_key_prefix=os.getenv("PROMETHEUS_REDIS_PREFIX", ""),
            redis_socket_timeout_ms=max(1, _getenv_int("PROMETHEUS_REDIS_SOCKET_TIMEOUT_MS", 2000)),
            auto_wipe=_getenv_bool("PROMETHEUS_AUTO_WIPE", False),
            wipe_param_enabled=_getenv_bool("PROMETHEUS_WIPE_PARAM_ENABLED", True),
            wipe_param=_getenv_str("PROMETHEUS_WIPE_PARAM", "wipe").strip(),
            wipe_value=_getenv_str("PROMETHEUS_WIPE_VALUE", "1").strip(),
            label_mismatch=label_mismatch,
            auto_clean_corrupted=_getenv_bool("PROMETHEUS_AUTO_CLEAN_CORRUPTED", True),
            render_strict=_getenv_bool("PROMETHEUS_RENDER_STRICT", False),
        )
