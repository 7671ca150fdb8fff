# src/sessionmesh/api_server/routes/core.py
"""
Service metadata endpoints.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request

from ... import __version__ as sessionmesh_version

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    """
    Reports service status together with cache and resolver counters.

    A missing SessionMesh instance is reported as ``degraded`` rather than
    failing the probe.
    """
    mesh = getattr(request.app.state, "mesh", None)
    if mesh is None:
        logger.warning("Health check with no SessionMesh instance available.")
        return {"status": "degraded", "version": sessionmesh_version}

    try:
        return {
            "status": "healthy",
            "version": sessionmesh_version,
            "gateway_base_url": mesh.gateway.base_url,
            "cache": mesh.cache.stats,
            "resolver": mesh.resolver.stats,
        }
    except Exception as e:
        logger.error(f"Could not collect health statistics: {e}", exc_info=True)
        return {"status": "degraded", "version": sessionmesh_version}
