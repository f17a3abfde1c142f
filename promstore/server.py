from __future__ import annotations

import logging
from typing import Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from .config import PrometheusConfig
from .registry import MetricsRegistry, build_registry
from .security import is_ip_allowed, resolve_client_ip


logger = logging.getLogger(__name__)


def should_wipe(cfg: PrometheusConfig, query_params: Mapping[str, str]) -> bool:
    # Auto wipe takes precedence over the query parameter.
    if cfg.auto_wipe:
        return True
    if not cfg.wipe_param_enabled or not cfg.wipe_param:
        return False
    actual = query_params.get(cfg.wipe_param)
    if actual is None:
        return False
    return str(actual).strip() == cfg.wipe_value


def create_app(registry: Optional[MetricsRegistry] = None, cfg: Optional[PrometheusConfig] = None) -> FastAPI:
    cfg = cfg or PrometheusConfig.from_env()
    registry = registry or build_registry(cfg)

    app = FastAPI()
    app.state.registry = registry
    app.state.prometheus_config = cfg

    @app.get("/healthz")
    async def healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.get(f"/{cfg.route}")
    def metrics(request: Request) -> PlainTextResponse:
        if not cfg.enabled:
            return PlainTextResponse("Prometheus metrics are disabled", status_code=403)

        peer = request.client.host if request.client else ""
        client_ip = resolve_client_ip(
            remote_ip=peer,
            headers=request.headers,
            trusted_proxy_cidrs=cfg.trusted_proxy_cidrs,
        )
        if not is_ip_allowed(remote_ip=client_ip, allowed=cfg.allowed_ips):
            logger.info("Prometheus: denied metrics scrape from %s", client_ip or "<unknown>")
            return PlainTextResponse("Access denied", status_code=403)

        # Render before wiping so the response carries what was wiped.
        body = registry.render()
        if should_wipe(cfg, request.query_params):
            registry.wipe()

        return PlainTextResponse(body, media_type=registry.content_type)

    return app


app = create_app()
