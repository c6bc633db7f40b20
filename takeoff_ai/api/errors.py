"""Mapping of application errors onto HTTP problem details."""

from fastapi import HTTPException, Request, status

from takeoff_ai.core.exceptions import (
    AppError,
    IngestionInProgressError,
    PlanNotFoundError,
    ValidationError,
)
from takeoff_ai.utils.logging import get_logger
from takeoff_ai.utils.responses import create_error_detail

LOGGER = get_logger(__name__)

_STATUS_BY_ERROR = [
    (PlanNotFoundError, status.HTTP_404_NOT_FOUND, "Plan Not Found"),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation Error"),
    (IngestionInProgressError, status.HTTP_409_CONFLICT, "Ingestion In Progress"),
]


def to_http_exception(error: AppError, request: Request) -> HTTPException:
    """Turn an AppError into an HTTPException carrying an RFC 7807 body."""
    for error_type, status_code, title in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            LOGGER.warning(f"{title}: {str(error)}", extra={"path": request.url.path})
            break
    else:
        status_code, title = status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Error"
        LOGGER.error(f"Request failed: {str(error)}", exc_info=True, extra={"path": request.url.path})

    detail = create_error_detail(title=title, status=status_code, detail=str(error), request=request)
    return HTTPException(status_code=status_code, detail=detail.model_dump(mode="json"))
