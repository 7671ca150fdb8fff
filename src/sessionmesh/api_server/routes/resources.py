# src/sessionmesh/api_server/routes/resources.py
"""
Forwarding endpoint for locally owned resources.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ...api import SessionMesh
from ...exceptions import (ResourceNotFoundError, SessionMeshError,
                           UnauthorizedError)
from ..dependencies import get_mesh, get_principal

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/resources/{resource_id}")
async def get_resource(
    resource_id: str,
    mesh: SessionMesh = Depends(get_mesh),
    principal: Optional[str] = Depends(get_principal),
) -> Response:
    """Returns the raw bytes of a resource with its stored content type."""
    try:
        resource = await mesh.gateway.read(resource_id, principal)
    except UnauthorizedError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to read this resource"
        )
    except ResourceNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Resource '{resource_id}' not found"
        )
    except SessionMeshError as e:
        logger.error(f"Error reading resource '{resource_id}': {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read resource"
        )
    return Response(content=resource.content, media_type=resource.content_type)
