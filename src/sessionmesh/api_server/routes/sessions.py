# src/sessionmesh/api_server/routes/sessions.py
"""
Session descriptor endpoint.

Serves this server's current view of a session in wire form so that peers
(or clients) can pick up the descriptor and resolve its history themselves.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ...api import SessionMesh
from ...auth import INBOUND_SESSION
from ...exceptions import (DescriptorInvalidError, SessionMeshError,
                           SessionNotFoundError)
from ..dependencies import get_mesh, get_principal

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/sessions/{session_id}")
async def get_session_descriptor(
    session_id: str,
    mesh: SessionMesh = Depends(get_mesh),
    principal: Optional[str] = Depends(get_principal),
) -> Dict[str, Any]:
    """
    Returns the session descriptor as ``{"id", "history", "state"}``.

    Raises:
        HTTPException: 401 if the inbound authorization hook refuses,
                       400 for an invalid descriptor, 404 if the session
                       is unknown, 500 on storage errors.
    """
    if not await mesh.authorizer.authorize_inbound(INBOUND_SESSION, session_id, principal):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to read this session"
        )
    try:
        descriptor = await mesh.sessions.get_descriptor(session_id)
    except SessionNotFoundError as e:
        logger.info(f"Descriptor requested for unknown session '{session_id}'.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DescriptorInvalidError as e:
        logger.warning(f"Rejected descriptor request for '{session_id}': {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SessionMeshError as e:
        logger.error(f"Error loading descriptor '{session_id}': {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load session descriptor"
        )
    return descriptor.to_wire()
