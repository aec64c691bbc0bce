"""
Tidy Monster control API.

Local HTTP surface for starting and stopping the tidy service, editing
settings and reading recent log entries.

Security Warning:
-----------------
The API has no authentication. It binds to localhost (127.0.0.1) by
default; only bind it elsewhere on a trusted network.
"""

from typing import Optional

from fastapi import FastAPI

from . import __version__
from .logs import RingBufferHandler
from .routes import control
from .service import TidyService
from .settings import KeyValueStore

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765


def create_app(
    service: TidyService,
    settings_store: KeyValueStore,
    log_buffer: Optional[RingBufferHandler] = None,
) -> FastAPI:
    """
    Create the control API application.

    Args:
        service: Background service the API starts and stops
        settings_store: Store the settings endpoints read and write
        log_buffer: Source for the /logs endpoint (empty if not provided)
    """
    app = FastAPI(
        title="Tidy Monster",
        description="Operator control for the desktop tidying service.",
        version=__version__,
    )

    app.state.service = service
    app.state.settings_store = settings_store
    app.state.log_buffer = log_buffer

    app.include_router(control.router)
    return app


def run_server(app: FastAPI, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Serve the control API until interrupted."""
    import uvicorn

    uvicorn.run(app, host=host, port=port, log_level="warning")
