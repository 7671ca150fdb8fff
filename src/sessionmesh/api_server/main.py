# src/sessionmesh/api_server/main.py
"""
Main FastAPI application for the SessionMesh server.

Serves session descriptors and forwards locally owned resources to peers.
The SessionMesh instance is created in the application lifespan and attached
to ``app.state.mesh``; ``create_app(mesh)`` accepts a pre-built instance
instead, which the caller then owns and closes.
"""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI

from .. import __version__
from ..api import SessionMesh
from ..exceptions import ConfigError, SessionMeshError
from ..logging_config import configure_logging, log_display
from .routes import core_router, resources_router, sessions_router

logger = logging.getLogger(__name__)


def create_app(
    mesh: Optional[SessionMesh] = None,
    config_file_path: Optional[str] = None,
    verbose: bool = False,
) -> FastAPI:
    """
    Builds the FastAPI application.

    Args:
        mesh: Pre-built SessionMesh. When None one is created on startup from
              configuration and closed on shutdown.
        config_file_path: Optional TOML file used when creating the instance.
        verbose: Send all log records to the console, not only display records.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("SessionMesh server starting up...")
        owns_mesh = mesh is None
        if owns_mesh:
            try:
                instance = await SessionMesh.create(config_file_path=config_file_path)
                log_config = dict(instance.config.logging)
                if verbose:
                    log_config["console_enabled"] = True
                log_file = configure_logging(app_name="sessionmesh-server", config=log_config)
                app.state.mesh = instance
                log_display(logger, logging.INFO, "Serving sessions at %s", instance.gateway.base_url)
                if log_file is not None:
                    log_display(logger, logging.INFO, "Logging to %s", log_file)
            except (ConfigError, SessionMeshError) as e:
                logger.critical(f"Fatal error during SessionMesh initialization: {e}", exc_info=True)
                app.state.mesh = None
                logger.warning("Server will start but session endpoints will be unavailable")
        else:
            app.state.mesh = mesh
        logger.info("SessionMesh server startup complete")

        yield

        logger.info("SessionMesh server shutting down...")
        if owns_mesh and getattr(app.state, "mesh", None) is not None:
            try:
                await app.state.mesh.close()
            except Exception as e:
                logger.error(f"Error during SessionMesh cleanup: {e}", exc_info=True)
        app.state.mesh = None
        logger.info("SessionMesh server shutdown complete")

    app = FastAPI(
        title="SessionMesh",
        description="Session descriptors and resource forwarding for cooperating servers",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(core_router, tags=["core"])
    app.include_router(sessions_router, tags=["sessions"])
    app.include_router(resources_router, tags=["resources"])

    @app.get("/")
    async def root() -> Dict[str, str]:
        return {"message": "SessionMesh is running", "version": __version__, "docs_url": "/docs"}

    return app


app = create_app()


def main(args: Optional[List[str]] = None) -> int:
    """Entry point for ``sessionmesh-server``."""
    import uvicorn

    parser = argparse.ArgumentParser(prog="sessionmesh-server", description="Run the SessionMesh server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    parser.add_argument("--config", dest="config_file_path", default=None, help="Path to a TOML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log everything to the console")
    parsed = parser.parse_args(args)

    application = create_app(config_file_path=parsed.config_file_path, verbose=parsed.verbose)
    uvicorn.run(application, host=parsed.host, port=parsed.port)
    return 0
