"""
Error Handler Middleware

Maps exceptions that escape a route onto JSON error bodies. Tool calls
normally never get here: the dispatcher turns failures into `{data, error}`.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from datenassistent.core.exceptions import DatenassistentException, RateLimitExceededError
from datenassistent.core.logging import logger


def setup_exception_handlers(app: FastAPI) -> None:
    """Set up global exception handlers.

    Args:
        app: FastAPI application
    """

    @app.exception_handler(DatenassistentException)
    async def application_exception_handler(
        _request: Request, exc: DatenassistentException
    ) -> JSONResponse:
        """Handle application exceptions."""
        logger.warning(
            "Application error",
            error_code=exc.error_code,
            message=exc.message,
            status_code=exc.status_code,
        )
        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors."""
        logger.warning("Validation error", errors=str(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Die Anfrage ist ungültig.",
                    "details": {"errors": [str(err.get("msg")) for err in exc.errors()]},
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        _request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            "Unexpected error",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "Ein unerwarteter Fehler ist aufgetreten.",
                }
            },
        )
