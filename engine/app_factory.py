# engine/app_factory.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.routing import APIRoute
from sqlalchemy import text

from core.ports import BackendTransport, CacheCoordinator, SchemaLoader
from engine.cache import QueryCache
from engine.db import Settings, get_settings, make_engine
from engine.meta_models import ModelMeta
from engine.registry import AccessorRegistry
from engine.routes import build_procedure_router, build_table_router
from engine.sql_transport import SqlTransport
from generate.loader import MetaFileLoader

logger = logging.getLogger("engine.app")

def _unique_op_id(route: APIRoute) -> str:
    method = next(iter(route.methods or {"GET"})).lower()
    tag = (route.tags[0] if route.tags else "default").lower().replace(" ", "_")
    name = (route.name or route.endpoint.__name__).lower().replace(" ", "_")
    return f"{tag}__{name}__{method}"

def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))

def create_app(
    meta: Optional[ModelMeta] = None,
    *,
    schema_loader: Optional[SchemaLoader] = None,
    transport: Optional[BackendTransport] = None,
    cache: Optional[CacheCoordinator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    # 1) Load endpoint meta
    if meta is None:
        meta = (schema_loader or MetaFileLoader()).load()

    # 2) Backend transport (SQL by default) + cache coordinator
    if transport is None:
        transport = SqlTransport(make_engine(settings.DATABASE_URL), meta, dialect=settings.DIALECT)
    cache = cache if cache is not None else QueryCache()

    # 3) Accessors
    registry = AccessorRegistry.from_meta(
        meta, transport, cache, default_page_size=settings.DEFAULT_PAGE_SIZE,
    )

    app = FastAPI(
        title="Schema Accessor Engine",
        version="0.1.0",
        generate_unique_id_function=_unique_op_id,
    )
    app.state.registry = registry
    app.state.cache = cache
    app.state.transport = transport

    # 4) Routers
    for accessor in registry.tables.values():
        app.include_router(build_table_router(accessor, cache if isinstance(cache, QueryCache) else None))
    if registry.procedures:
        app.include_router(build_procedure_router(registry.procedures))

    @app.get("/meta")
    def get_meta():
        return meta.model_dump(mode="json")

    @app.get("/entities")
    def list_entities():
        return {"tables": list(registry.tables), "procedures": list(registry.procedures)}

    @app.get("/healthz")
    def healthz():
        engine = getattr(transport, "engine", None)
        if engine is None:
            return {"status": "ok"}
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return {"status": "error", "detail": str(e)}

    return app
