"""Command-line entry point.

Usage
-----
Configure through ``ACX_*`` / ``LC_*`` environment variables, then::

    acxmatrix serve --port 8080
    acxmatrix keys --prefix index: --limit 20
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from aiohttp import web

from acxmatrix.app import create_app
from acxmatrix.config import MatrixConfig
from acxmatrix.exceptions import MatrixError
from acxmatrix.kv import open_store
from acxmatrix.state.store import MatrixStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="acxmatrix", description="ACX Matrix event service")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")

    keys = sub.add_parser("keys", help="List stored keys")
    keys.add_argument("--prefix", default="", help="Only keys starting with PREFIX")
    keys.add_argument("--limit", type=int, default=100, help="Maximum keys to print (default: 100)")
    return parser


async def _list_keys(config: MatrixConfig, prefix: str, limit: int) -> list[str]:
    store = MatrixStore(open_store(config), config)
    try:
        return await store.list_keys(prefix, limit=limit)
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = MatrixConfig.from_env()
        if args.command == "serve":
            web.run_app(create_app(config), host=args.host, port=args.port, print=None)
            return 0
        for key in asyncio.run(_list_keys(config, args.prefix, args.limit)):
            print(key)
    except MatrixError as exc:
        print(f"acxmatrix: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0
