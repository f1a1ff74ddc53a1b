"""Error responses for the Encore API.

Every error body has the shape {"message": <text>, "code": <code>}, which
is what existing clients read.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from encore.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class ErrorBody(BaseModel):
    """JSON body of an error response."""

    model_config = {"extra": "forbid"}

    message: str
    code: str


class ApiError(HTTPException):
    """Base exception for API errors."""

    def __init__(self, status_code: int, code: str, text: str):
        self.code = code
        self.text = text
        super().__init__(status_code=status_code, detail=text)

    def to_body(self) -> ErrorBody:
        return ErrorBody(message=self.text, code=self.code)


class BadRequestError(ApiError):
    """Invalid request (400)."""

    def __init__(self, text: str):
        super().__init__(status_code=400, code="BadRequest", text=text)


class UnauthorizedError(ApiError):
    """Missing credentials (401)."""

    def __init__(self, text: str = "Unauthorized access"):
        super().__init__(status_code=401, code="Unauthorized", text=text)


class ForbiddenError(ApiError):
    """Credentials present but not sufficient (403)."""

    def __init__(self, text: str = "Access denied"):
        super().__init__(status_code=403, code="Forbidden", text=text)


class NotFoundError(ApiError):
    """Resource not found (404)."""

    def __init__(self, resource_type: str, identifier: str):
        super().__init__(
            status_code=404,
            code="NotFound",
            text=f"{resource_type} '{identifier}' not found",
        )


class ConflictError(ApiError):
    """Request conflicts with current state (409)."""

    def __init__(self, text: str):
        super().__init__(status_code=409, code="Conflict", text=text)


class InternalServerError(ApiError):
    """Internal server error (500)."""

    def __init__(self, text: str = "An unexpected error occurred"):
        super().__init__(status_code=500, code="InternalServerError", text=text)


async def api_exception_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Exception handler for API errors."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body().model_dump())


async def persistence_exception_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    """Exception handler for storage failures surfaced by the service layer."""
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorBody(message="Storage failure", code="PersistenceError").model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=ErrorBody(
            message="An unexpected error occurred", code="InternalServerError"
        ).model_dump(),
    )
