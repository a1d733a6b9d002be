"""aiohttp application wiring."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from aiohttp import web

from acxmatrix._handlers import ingest, reads, sentinel, session
from acxmatrix._handlers.common import CONFIG_KEY, CRM_KEY, STORE_KEY, error_middleware
from acxmatrix.config import MatrixConfig
from acxmatrix.crm import CrmClient
from acxmatrix.kv import open_store
from acxmatrix.state.store import MatrixStore

_logger = logging.getLogger(__name__)


def _add_routes(app: web.Application) -> None:
    app.router.add_post("/acx-matrix-webhook", ingest.handle_webhook)
    app.router.add_post("/acx-matrix-ingest-form", ingest.handle_form)
    app.router.add_get("/acx-matrix-summary", reads.handle_summary, allow_head=False)
    app.router.add_get("/acx-matrix-recent", reads.handle_recent, allow_head=False)
    app.router.add_get("/acx-matrix-locations", reads.handle_locations, allow_head=False)
    app.router.add_get("/acx-matrix-series", reads.handle_series, allow_head=False)
    app.router.add_get("/acx-matrix-health", reads.handle_health, allow_head=False)
    app.router.add_get("/acx-matrix-public-health", reads.handle_public_health, allow_head=False)
    app.router.add_get("/acx-matrix-debug-list", reads.handle_debug_list, allow_head=False)
    app.router.add_post("/acx-sentinel-webhook", sentinel.handle_sentinel)
    app.router.add_post("/auth-login", session.handle_login)
    app.router.add_get("/auth-logout", session.handle_logout, allow_head=False)
    app.router.add_post("/auth-logout", session.handle_logout)
    app.router.add_get("/auth-check", session.handle_check, allow_head=False)


def create_app(
    config: MatrixConfig,
    *,
    store: MatrixStore | None = None,
    crm: CrmClient | None = None,
) -> web.Application:
    """Build the service application.

    Parameters
    ----------
    config : MatrixConfig
        Service configuration.
    store : MatrixStore, optional
        Pre-built store. When omitted one is opened from ``config`` and
        closed on shutdown.
    crm : CrmClient, optional
        Pre-built CRM client. When omitted and ``config.crm_enabled``, a
        client with its own HTTP session is created for the app lifetime.
    """
    app = web.Application(middlewares=[error_middleware])
    app[CONFIG_KEY] = config
    owns_store = store is None
    app[STORE_KEY] = store if store is not None else MatrixStore(open_store(config), config)
    owns_crm = crm is None and config.crm_enabled
    if owns_crm:
        crm = CrmClient(config)
    if crm is not None:
        app[CRM_KEY] = crm

    async def _lifecycle(app: web.Application) -> AsyncIterator[None]:
        if owns_crm:
            await app[CRM_KEY].__aenter__()
        _logger.info(
            "acxmatrix started (store=%s backend=%s write_mode=%s crm=%s)",
            config.store_name,
            config.store_backend,
            config.write_mode,
            CRM_KEY in app,
        )
        yield
        if owns_crm:
            await app[CRM_KEY].__aexit__(None, None, None)
        if owns_store:
            await app[STORE_KEY].close()

    app.cleanup_ctx.append(_lifecycle)
    _add_routes(app)
    return app
