from __future__ import annotations

import ipaddress
from typing import Mapping, Optional


def _parse_networks(entries: str) -> list[ipaddress._BaseNetwork]:
    networks: list[ipaddress._BaseNetwork] = []
    for raw in (entries or "").split(","):
        raw = raw.strip()
        if not raw:
            continue
        try:
            # A bare address parses as a single-host network.
            networks.append(ipaddress.ip_network(raw, strict=False))
        except ValueError:
            continue
    return networks


def is_ip_allowed(*, remote_ip: str, allowed: str) -> bool:
    """
    Allowlist check for the metrics endpoint.

    - If allowed is empty/blank -> allow all.
    - allowed is a comma-separated list of IPs or CIDRs (e.g. "10.0.0.1,192.168.1.0/24").
    - If allowed is non-empty but contains no valid entries -> deny.
    """
    if not (allowed or "").strip():
        return True

    try:
        ip = ipaddress.ip_address((remote_ip or "").strip())
    except ValueError:
        return False

    networks = _parse_networks(allowed)
    if not networks:
        return False
    return any(ip in net for net in networks)


def _first_forwarded_ip(headers: Mapping[str, str]) -> Optional[str]:
    forwarded = next(
        (str(v or "") for k, v in (headers or {}).items() if str(k).lower() == "x-forwarded-for"),
        "",
    )
    candidate = forwarded.split(",")[0].strip()
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def resolve_client_ip(*, remote_ip: str, headers: Mapping[str, str], trusted_proxy_cidrs: str) -> str:
    """
    Effective client address for allowlisting.

    The socket peer is authoritative unless it sits inside one of
    `trusted_proxy_cidrs`, in which case the left-most valid
    X-Forwarded-For entry wins.
    """
    peer = (remote_ip or "").strip()
    proxies = _parse_networks(trusted_proxy_cidrs)
    if not peer or not proxies:
        return peer
    try:
        peer_ip = ipaddress.ip_address(peer)
    except ValueError:
        return peer
    if not any(peer_ip in net for net in proxies):
        return peer
    return _first_forwarded_ip(headers) or peer
