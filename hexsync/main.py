from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles

from hexsync.api.routes import router
from hexsync.codes import CodeGenerator
from hexsync.config import Settings, load_settings
from hexsync.gateway import ProtocolGateway
from hexsync.room_store import RoomStore
from hexsync.sessions import SessionRegistry
from hexsync.websocket_hub import ConnectionHub

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app with its own store, session registry, hub and gateway.

    Each call yields fully independent state, which is what tests rely on.
    """

    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    store = RoomStore(
        CodeGenerator(
            length=settings.code_length,
            alphabet=settings.code_alphabet,
            max_attempts=settings.code_max_attempts,
        )
    )
    sessions = SessionRegistry()
    hub = ConnectionHub(max_queue=settings.outbox_max_queue)
    gateway = ProtocolGateway(store=store, sessions=sessions, outbox=hub)

    app = FastAPI(title="hexsync", version="0.1.0")
    app.state.settings = settings
    app.state.store = store
    app.state.sessions = sessions
    app.state.hub = hub
    app.state.gateway = gateway
    app.include_router(router)

    # Serve the browser client (no build step) when it ships alongside.
    # Test/CI environments usually have no static directory; don't fail.
    if settings.static_dir.is_dir():
        app.mount("/ui", StaticFiles(directory=str(settings.static_dir), html=True), name="ui")
        logger.info(f"Serving static client from {settings.static_dir}")

    @app.get("/", include_in_schema=False)
    async def _root() -> RedirectResponse:
        return RedirectResponse(url="/ui/")

    @app.get("/info")
    async def info() -> dict[str, str]:
        return {"name": "hexsync", "version": "0.1.0"}

    return app


def run() -> None:
    import uvicorn
    from dotenv import load_dotenv

    # Local runs: pick up HEXSYNC_* / PORT overrides from a .env next to the project.
    load_dotenv(override=False)
    settings = load_settings()
    logger.info(f"Starting hexsync on {settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
