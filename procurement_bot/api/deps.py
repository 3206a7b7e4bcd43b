"""FastAPI dependencies."""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from procurement_bot.config import settings
from procurement_bot.jobs.store import JobStore
from procurement_bot.worker.controller import JobController


def get_job_store(request: Request) -> JobStore:
    """Job store created at startup."""
    return request.app.state.job_store


def get_controller(request: Request) -> JobController:
    """Job controller created at startup."""
    return request.app.state.controller


async def require_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None),
) -> None:
    """
    Require the configured API key for job-starting endpoints.

    Accepts ``X-API-Key: <key>`` or ``Authorization: Bearer <key>``. No key
    configured means no check.

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    if not settings.api_key:
        return

    provided = x_api_key
    if not provided and authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()

    if provided != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
