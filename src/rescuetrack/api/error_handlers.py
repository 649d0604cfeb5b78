"""Global exception handlers — every failure leaves as the error envelope.

Learn: Four layers, most specific first:
1. RescueTrackError → its own code/status/message/details
2. RequestValidationError → VALIDATION_ERROR (400) listing every bad field
3. IntegrityError → RESOURCE_CONFLICT (409), for races the service
   pre-checks could not see (e.g. two registrations with one email)
4. Exception → INTERNAL_ERROR (500); the message is hidden outside
   development so internals never leak
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from rescuetrack.config import settings
from rescuetrack.errors import InternalError, RescueTrackError, ResourceConflict, ValidationError

logger = structlog.get_logger()


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(RescueTrackError)
    async def rescuetrack_error_handler(request: Request, exc: RescueTrackError):
        log = logger.error if exc.http_status >= 500 else logger.info
        log("api.error", code=exc.code, path=request.url.path, message=exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = ValidationError("Invalid request data", details=validation_details(exc))
        logger.info("api.validation_error", path=request.url.path, fields=len(error.details))
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_response())

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning("api.integrity_error", path=request.url.path, error=str(exc.orig))
        error = ResourceConflict("Resource conflicts with existing data")
        return JSONResponse(status_code=error.http_status, content=error.to_response())

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.exception("api.unhandled_error", path=request.url.path)
        message = str(exc) if settings.environment == "development" else "An unexpected error occurred"
        error = InternalError(message)
        return JSONResponse(status_code=error.http_status, content=error.to_response())


def validation_details(exc: RequestValidationError) -> list[dict]:
    """One {field, message} per failing field, location prefix dropped."""
    details = []
    for e in exc.errors():
        loc = [str(part) for part in e["loc"]]
        field = ".".join(loc[1:]) if len(loc) > 1 else ".".join(loc)
        message = e["msg"].removeprefix("Value error, ")
        details.append({"field": field, "message": message})
    return details
