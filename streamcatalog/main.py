"""streamcatalog FastAPI application.

``create_app()`` wires the services onto ``app.state`` for dependency
injection; the module-level ``app`` is what uvicorn serves.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request

from streamcatalog.database import DB_NAME
from streamcatalog.routes import catalog_api, epg, health
from streamcatalog.services.cache_service import CacheService
from streamcatalog.services.catalog_repository import CatalogRepository
from streamcatalog.services.config_service import ConfigService, default_data_dir
from streamcatalog.services.http_client import HttpClientService
from streamcatalog.services.storage import KeyValueStore, SqliteStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
logger = logging.getLogger(__name__)


def create_app(
    data_dir: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    store: KeyValueStore | None = None,
) -> FastAPI:
    """Build a fully wired application rooted at *data_dir*."""
    data_dir = data_dir or default_data_dir()
    os.makedirs(data_dir, exist_ok=True)

    cfg = ConfigService(data_dir)
    cfg.load()
    options = cfg.options
    http = HttpClientService(transport=transport, user_agent=options.user_agent,
                             connect_timeout=options.timeouts.connect)
    cache = CacheService(store or SqliteStore(os.path.join(data_dir, DB_NAME)), ttls=options.cache_ttls)
    repository = CatalogRepository(cfg, cache, http)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = repository.active_profile()
        logger.info(
            f"streamcatalog started: {len(cfg.get_profiles())} profile(s), "
            f"active: {active.name if active else 'none'}"
        )
        yield
        await http.close()
        logger.info("Application shutdown complete")

    app = FastAPI(title="streamcatalog", lifespan=lifespan)
    app.state.repository = repository

    # Ensure UTF-8 charset in JSON responses
    @app.middleware("http")
    async def add_utf8_charset(request: Request, call_next):
        response = await call_next(request)
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type and "charset" not in content_type:
            response.headers["content-type"] = "application/json; charset=utf-8"
        return response

    for r in (health, catalog_api, epg):
        app.include_router(r.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
