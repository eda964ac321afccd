from __future__ import annotations

from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class PipelineError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "pipeline_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(PipelineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidTransitionError(PipelineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_transition"


class PreconditionFailedError(PipelineError):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    code = "precondition_failed"


class ConflictError(PipelineError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class ApiError(PipelineError):
    """Network or server failure seen by the client."""

    code = "api_error"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


ERRORS_BY_CODE: dict[str, type[PipelineError]] = {
    error_class.code: error_class
    for error_class in (
        NotFoundError,
        InvalidTransitionError,
        PreconditionFailedError,
        ConflictError,
    )
}

ERRORS_BY_STATUS: dict[int, type[PipelineError]] = {
    error_class.status_code: error_class for error_class in ERRORS_BY_CODE.values()
}


def error_payload(exc: PipelineError) -> dict[str, str]:
    return {"detail": exc.message, "code": exc.code}


async def pipeline_error_handler(_: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc))
