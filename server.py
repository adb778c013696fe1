# server.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from topicmesh.api import domain as domain_router
from topicmesh.api.dependencies import get_admin, get_schema_registry
from topicmesh.core.config import Settings, settings
from topicmesh.core.errors import install_exception_handlers


# Lifespan handler replaces @app.on_event("startup"/"shutdown")
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        # Close the shared connections only if they were ever opened
        if get_admin.cache_info().currsize:
            admin = get_admin()
            if hasattr(admin, "close"):
                admin.close()
        if get_schema_registry.cache_info().currsize:
            registry = get_schema_registry()
            if registry is not None and hasattr(registry, "close"):
                registry.close()


def create_app(cfg: Settings = settings) -> FastAPI:
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="TopicMesh API",
        version="1.0.0",
        lifespan=lifespan,
        openapi_url="/api/v1/openapi.json",
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
    )

    allow_origins = cfg.cors_allow_origins or [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_exception_handlers(app)

    app.include_router(domain_router.router, prefix="/api/v1")

    if cfg.metrics_enabled:
        from topicmesh.api import metrics as metrics_router
        # metrics lives at /metrics (Prometheus convention)
        app.include_router(metrics_router.router, prefix="")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=True)
