"""
API routes for operator-submitted queries.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from loadsim.api.dependencies import get_services
from loadsim.api.submissions import run_submission
from loadsim.core.services import Services
from loadsim.models.queries import ExecuteQueryRequest

router = APIRouter()


@router.post("/execute")
async def execute_query(
    body: ExecuteQueryRequest,
    services: Services = Depends(get_services),
):
    """
    Validate and execute one SQL statement.

    Only SELECT, INSERT and UPDATE statements are executed. The resulting
    metric event is broadcast to every live viewer; rejected statements are
    reported to the caller only.

    Returns:
        Rows and timing for reads, affected rows and insert id for writes, or
        `{error, code, executionTime}` on failure
    """
    status_code, payload = await run_submission(
        services, body.query, viewer_id=body.viewer_id
    )
    return JSONResponse(status_code=status_code, content=payload)
