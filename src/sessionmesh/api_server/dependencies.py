# src/sessionmesh/api_server/dependencies.py
"""
FastAPI dependencies shared by the SessionMesh routes.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from ..api import SessionMesh

logger = logging.getLogger(__name__)

# Raw header value; the authorizer checks the scheme and token itself.
authorization_header_scheme = APIKeyHeader(name="Authorization", auto_error=False)


def get_mesh(request: Request) -> SessionMesh:
    """
    Returns the SessionMesh instance attached to the application state.

    Raises:
        HTTPException: 503 if the service failed to initialize.
    """
    mesh = getattr(request.app.state, "mesh", None)
    if mesh is None:
        logger.error("SessionMesh instance not available on app state.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SessionMesh service is not available"
        )
    return mesh


async def get_principal(authorization: Optional[str] = Depends(authorization_header_scheme)) -> Optional[str]:
    """The caller's credentials, taken verbatim from the Authorization header."""
    return authorization
