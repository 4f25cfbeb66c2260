"""ASGI application factory."""

from __future__ import annotations

import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .api import admin as admin_router
from .api import v1 as v1_router
from .log import configure_logging
from .middleware.access import AccessControlMiddleware
from .runtime import GateRuntime

CONFIG_DIR_ENV = "IPGATE_CONFIG_DIR"


def resolve_config_dir(config_dir: str | os.PathLike[str] | None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "config"


def create_app(config_dir: str | os.PathLike[str] | None = None) -> FastAPI:
    cfg_dir = resolve_config_dir(config_dir)
    runtime = GateRuntime(cfg_dir)

    app = FastAPI(
        title="ipgate",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url="/openapi.json",
    )

    app.add_middleware(AccessControlMiddleware)
    app.include_router(v1_router.router)
    app.include_router(admin_router.router)

    app.state.runtime = runtime

    @app.get("/healthz")
    async def healthz():
        return JSONResponse({"status": "ok" if runtime.ready else "starting"})

    @app.on_event("startup")
    async def on_startup() -> None:
        await runtime.initialize()
        configure_logging(runtime.config.logging)
        runtime.install_signal_handlers()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await runtime.shutdown()

    return app


__all__ = ["create_app", "resolve_config_dir"]
