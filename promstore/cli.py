from __future__ import annotations

import argparse
import sys
from dataclasses import replace

import uvicorn

from .config import PrometheusConfig
from .registry import build_registry
from .server import create_app


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="promstore", description="Inspect, reset or serve stored Prometheus metrics.")
    ap.add_argument("--redis-url", default=None, help="Override PROMETHEUS_REDIS_URL.")
    sub = ap.add_subparsers(dest="command", required=True)

    p_render = sub.add_parser("render", help="Print the exposition text for the stored state.")
    p_render.add_argument(
        "--silent",
        action="store_true",
        help="Render label mismatches as comments instead of failing.",
    )
    sub.add_parser("wipe", help="Delete every stored metric key.")
    p_serve = sub.add_parser("serve", help="Run the scrape endpoint.")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=9464)
    args = ap.parse_args(argv)

    cfg = PrometheusConfig.from_env()
    if args.redis_url:
        cfg = replace(cfg, redis_url=args.redis_url)
    registry = build_registry(cfg)

    if args.command == "render":
        sys.stdout.write(registry.render(strict=not args.silent))
        return 0

    if args.command == "serve":
        uvicorn.run(create_app(registry, cfg), host=args.host, port=args.port, log_level="info")
        return 0

    registry.wipe()
    print("wiped", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
