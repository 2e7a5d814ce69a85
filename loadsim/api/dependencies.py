"""
FastAPI dependencies.
"""

from fastapi import HTTPException, Request, status

from loadsim.core.services import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "NOT_READY", "message": "Services are not initialized."},
        )
    return services
