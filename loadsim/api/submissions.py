"""
Operator submission outcome, shared by the HTTP endpoint and the WebSocket
`execute` action.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder

from loadsim.api.error_handling import ApiError, classify_query_error, debug_detail

if TYPE_CHECKING:
    from loadsim.core.services import Services

logger = logging.getLogger(__name__)


async def run_submission(
    services: "Services", sql: str, viewer_id: Optional[str] = None
) -> tuple[int, dict[str, Any]]:
    """
    Execute an operator submission and build its response.

    Returns:
        (status_code, body) with the success or `{error, code, executionTime}` shape
    """
    try:
        result = await services.submit(sql, viewer_id=viewer_id)
    except Exception as e:
        api_error = classify_query_error(e)
        if api_error is None:
            logger.exception("Unexpected failure executing submitted query")
            api_error = ApiError(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                debug_detail(e) or "Query execution failed",
            )
        return api_error.status_code, api_error.to_body()

    # Rows may hold dates and decimals; make them JSON-safe for both transports.
    return status.HTTP_200_OK, jsonable_encoder(result.to_response())
