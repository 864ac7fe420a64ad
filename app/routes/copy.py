"""Folder copy API routes."""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from app.dependencies import ServiceContainer, get_container
from app.exceptions import InputValidationError
from app.models.copy_models import CopyRequest
from app.utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/api", tags=["copy"])

# Web-app style clients post to the service root
root_router = APIRouter(tags=["copy"])


async def _parse_copy_request(request: Request) -> CopyRequest:
    """Parse the JSON body of a copy request.

    Raises:
        InputValidationError: If the body is missing or not a valid request
    """
    if not await request.body():
        raise InputValidationError("No POST data received.")

    try:
        data = await request.json()
    except ValueError:
        raise InputValidationError("Request body is not valid JSON.") from None

    if not isinstance(data, dict):
        raise InputValidationError("Request body must be a JSON object.")

    try:
        return CopyRequest.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise InputValidationError(f"Invalid parameter {field}: {first.get('msg')}") from None


def _caller_identity(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def handle_copy_request(request: Request, services: ServiceContainer) -> JSONResponse:
    """Run a copy request, inline or through the job queue.

    Checks run in order and each rejects the request before anything is
    created: API key, folder ID format, rate limit (inline requests only)
    and folder access. Requests with a callbackUrl are queued and answered
    with a job ID; all others are copied before the response is sent.

    Args:
        request: Incoming request
        services: Service container

    Returns:
        JSON envelope with the result, or the job ID for queued requests
    """
    params = await _parse_copy_request(request)

    services.auth.verify_api_key(params.api_key)
    services.auth.validate_folder_ids(params.source_folder_id, params.destination_folder_id)
    if params.callback_url:
        services.auth.validate_callback_url(params.callback_url)
    else:
        services.rate_limiter.check(_caller_identity(request))

    await services.copy_service.verify_access(
        params.source_folder_id, params.destination_folder_id
    )

    if params.callback_url:
        job_id = await services.job_queue.submit(
            source_folder_id=params.source_folder_id,
            destination_folder_id=params.destination_folder_id,
            callback_url=params.callback_url,
            new_folder_name=params.new_folder_name,
            save_json_output=params.save_json_output,
        )
        return JSONResponse(
            status_code=202,
            content={
                "success": True,
                "jobId": job_id,
                "message": "Job queued. The result will be posted to callbackUrl when the copy has finished.",
            },
        )

    logger.info(f"Execution started for caller {_caller_identity(request)}")
    result = await services.copy_service.copy_folder_structure(
        params.source_folder_id,
        params.destination_folder_id,
        params.new_folder_name,
        params.save_json_output,
    )
    return JSONResponse(status_code=200, content={"success": True, "data": result.to_json_dict()})


@router.post("/copy")
async def copy_folder(
    request: Request,
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Copy a folder tree.

    Returns:
        {success, data} for inline copies, {success, jobId, message} for
        queued copies, {success: false, error} on rejection
    """
    return await handle_copy_request(request, services)


@root_router.post("/")
async def copy_folder_root(
    request: Request,
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Same as POST /api/copy."""
    return await handle_copy_request(request, services)


@router.get("/queue")
async def get_queue_status(
    x_api_key: Optional[str] = Header(default=None),
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Get the number of queued jobs and the scheduler state.

    Returns:
        Queue status
    """
    services.auth.verify_api_key(x_api_key)
    return {
        "success": True,
        "pendingJobs": await services.job_queue.pending_count(),
        "activeJobs": services.scheduler.active_ticks,
        "schedulerRunning": services.scheduler.running,
    }


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": "Drive Folder Copy Service",
    }
