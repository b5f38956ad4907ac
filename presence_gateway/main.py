"""
Presence Gateway main application.

Serves one WebSocket endpoint at "/" for presence clients. Plain HTTP
requests to "/" get a short status text and never touch the registry.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from presence_gateway import __version__
from presence_gateway.components.core.constants import SERVER_RUNNING_TEXT
from presence_gateway.components.endpoints.handlers import PresenceEndpoint
from presence_gateway.connection_manager import ConnectionManager
from shared.config.logging import presence_logger as logger, setup_logging
from shared.config.settings import settings


def create_app(manager: ConnectionManager | None = None) -> FastAPI:
    """
    Build the FastAPI application around a connection manager.

    Args:
        manager: Manager to serve. A fresh one is created if omitted.
    """
    manager = manager if manager is not None else ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts the heartbeat monitor, the single process-wide liveness task,
        and stops it on shutdown.
        """
        setup_logging()
        logger.info(
            "Starting Presence Gateway",
            port=settings.presence_gateway_port,
            env=settings.environment,
            broadcast_scope=manager.broadcaster.scope,
        )
        for problem in settings.validate_production_settings():
            logger.warning("Configuration problem", problem=problem)

        manager.start_heartbeat()

        yield

        logger.info("Shutting down Presence Gateway")
        await manager.shutdown()

    app = FastAPI(
        title="Presence Gateway",
        description="Real-time room presence over WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins(),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # =========================================================================
    # HTTP
    # =========================================================================

    @app.get("/", response_class=PlainTextResponse)
    def server_status() -> str:
        """Non-upgrade requests to the socket path."""
        return SERVER_RUNNING_TEXT

    @app.get("/health")
    async def health_check():
        """Health check with connection statistics. Runs on the event loop."""
        try:
            stats = manager.get_stats()
        except Exception as e:
            logger.warning("Failed to get stats in health check", error=str(e))
            stats = {"error": "stats_unavailable"}
        return {
            "status": "healthy",
            "service": "presence-gateway",
            "version": app.version,
            "environment": settings.environment,
            **stats,
        }

    # =========================================================================
    # WebSocket
    # =========================================================================

    @app.websocket("/")
    async def presence_websocket(websocket: WebSocket):
        """WebSocket endpoint for presence clients."""
        endpoint = PresenceEndpoint(websocket, manager)
        await endpoint.run()

    return app


app = create_app()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "presence_gateway.main:app",
        host=settings.presence_gateway_host,
        port=settings.presence_gateway_port,
        reload=settings.debug,
    )
