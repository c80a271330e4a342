from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .api.http import router as http_router
from .api.ws import router as ws_router
from .common.errors import ApiError
from .common.trace import new_trace_id
from .core.config import ConfigManager, HubConfig
from .events.bus import MessageBus
from .models import ErrorEnvelope


def create_app(*, bus: Optional[MessageBus] = None, config: Optional[HubConfig] = None) -> FastAPI:
    """Bridge app exposing a MessageBus over HTTP and WebSocket.

    A bus passed in by the caller stays owned by the caller; a bus created here
    is closed on shutdown.
    """
    app = FastAPI(title="Topic Hub Bridge")

    # CORS (dev-friendly; tighten in prod)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    cfg = config or ConfigManager().load()
    app.state.config = cfg
    logging.getLogger("topic_hub").setLevel(cfg.log_level.upper())

    owns_bus = bus is None
    app.state.bus = bus if bus is not None else MessageBus(cfg.bus)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        if owns_bus:
            app.state.bus.close()

    @app.exception_handler(ApiError)
    async def api_error_handler(_, exc: ApiError):
        body = ErrorEnvelope(
            code=exc.code,
            message=exc.message,
            trace_id=new_trace_id(),
            data=exc.data if exc.data is not None else {},
        )
        return JSONResponse(status_code=exc.http_status, content=body.model_dump())

    app.include_router(http_router, prefix="/v1")
    app.include_router(ws_router, prefix="/v1")
    return app
