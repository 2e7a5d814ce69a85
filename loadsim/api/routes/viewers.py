"""
API routes for connected viewers: their query history and live statistics.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from loadsim.api.dependencies import get_services
from loadsim.core.services import Services
from loadsim.websocket.session import ViewerSession

router = APIRouter()


def _get_session(services: Services, viewer_id: str) -> ViewerSession:
    session = services.sessions.get(viewer_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Viewer not found: {viewer_id}",
        )
    return session


@router.get("/", response_model=List[str])
async def list_viewers(services: Services = Depends(get_services)):
    """List the ids of connected viewers."""
    return services.sessions.ids()


@router.get("/{viewer_id}/history", response_model=Dict[str, Any])
async def get_viewer_history(
    viewer_id: str,
    kind: Optional[str] = Query(None, description="Exact query kind, or 'all'"),
    search: Optional[str] = Query(None, description="Case-insensitive text match"),
    services: Services = Depends(get_services),
):
    """
    Get a viewer's query history, newest first.

    Args:
        viewer_id: Viewer id received on WebSocket connect
        kind: Only entries of this kind
        search: Only entries whose query text contains this

    Returns:
        Matching entries plus the unfiltered total
    """
    session = _get_session(services, viewer_id)
    entries = session.history_view(kind=kind, search=search)
    return {
        "viewer_id": viewer_id,
        "total": len(session.history),
        "count": len(entries),
        "entries": entries,
    }


@router.get("/{viewer_id}/stats", response_model=Dict[str, Any])
async def get_viewer_stats(viewer_id: str, services: Services = Depends(get_services)):
    """Get the statistics of a viewer's current rolling window."""
    session = _get_session(services, viewer_id)
    return {
        "viewer_id": viewer_id,
        "stats": session.window.stats().to_dict(),
    }
