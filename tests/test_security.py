from __future__ import annotations

from promstore.security import is_ip_allowed, resolve_client_ip


def test_is_ip_allowed_allows_all_when_empty() -> None:
    assert is_ip_allowed(remote_ip="1.2.3.4", allowed="") is True
    assert is_ip_allowed(remote_ip="::1", allowed="   ") is True


def test_is_ip_allowed_matches_plain_ips_and_cidrs() -> None:
    assert is_ip_allowed(remote_ip="127.0.0.1", allowed="127.0.0.1,10.0.0.1") is True
    assert is_ip_allowed(remote_ip="127.0.0.2", allowed="127.0.0.1,10.0.0.1") is False
    assert is_ip_allowed(remote_ip="192.168.1.10", allowed="192.168.1.0/24") is True
    assert is_ip_allowed(remote_ip="192.168.2.10", allowed="192.168.1.0/24") is False
    assert is_ip_allowed(remote_ip="::1", allowed="127.0.0.1, ::1") is True


def test_is_ip_allowed_invalid_config_or_peer_denies() -> None:
    # Non-empty config but no valid entries -> deny.
    assert is_ip_allowed(remote_ip="1.2.3.4", allowed="not_an_ip") is False
    assert is_ip_allowed(remote_ip="testclient", allowed="127.0.0.1") is False
    # Invalid entries are skipped, valid ones still apply.
    assert is_ip_allowed(remote_ip="10.1.1.1", allowed="junk, 10.0.0.0/8") is True


def test_resolve_client_ip_ignores_xff_without_trusted_proxies() -> None:
    ip = resolve_client_ip(
        remote_ip="10.0.0.10",
        headers={"X-Forwarded-For": "1.2.3.4"},
        trusted_proxy_cidrs="",
    )
    assert ip == "10.0.0.10"


def test_resolve_client_ip_honors_xff_only_for_trusted_proxy() -> None:
    ip = resolve_client_ip(
        remote_ip="10.0.0.10",
        headers={"x-forwarded-for": "1.2.3.4, 10.0.0.10"},
        trusted_proxy_cidrs="10.0.0.0/8",
    )
    assert ip == "1.2.3.4"

    ip2 = resolve_client_ip(
        remote_ip="192.168.10.10",
        headers={"X-Forwarded-For": "1.2.3.4"},
        trusted_proxy_cidrs="10.0.0.0/8",
    )
    assert ip2 == "192.168.10.10"


def test_resolve_client_ip_falls_back_on_garbage_xff() -> None:
    ip = resolve_client_ip(
        remote_ip="10.0.0.10",
        headers={"X-Forwarded-For": "unknown"},
        trusted_proxy_cidrs="10.0.0.0/8",
    )
    assert ip == "10.0.0.10"


def test_resolve_client_ip_ignores_xff_for_unparseable_peer() -> None:
    ip = resolve_client_ip(
        remote_ip="testclient",
        headers={"X-Forwarded-For": "1.2.3.4"},
        trusted_proxy_cidrs="10.0.0.0/8",
    )
    assert ip == "testclient"
