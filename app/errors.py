"""Error taxonomy and FastAPI exception handlers"""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

logger = structlog.get_logger()


class AppError(Exception):
    """Base application error rendered as {status, data, message}"""

    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, data: Any = None):
        self.message = message or self.default_message
        self.data = data if data is not None else []
        super().__init__(self.message)


class BadRequest(AppError):
    """Business-rule rejection, invalid input or provider rejection"""
    status_code = 400
    default_message = "Bad Request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(AppError):
    status_code = 404
    default_message = "Not Found"


class Conflict(AppError):
    """Double booking of a timeslot"""
    status_code = 409
    default_message = "Conflict"


class UpstreamUnavailable(AppError):
    """An external service could not be reached or timed out"""
    status_code = 502
    default_message = "Bad Gateway"


class PaymentTimeout(AppError):
    """A payment provider did not reach a terminal status in time"""
    status_code = 504
    default_message = "PAYMENT_STATUS_TIMEOUT"


class StorageError(AppError):
    """Database failure; the message never reaches the caller"""
    status_code = 500


class StorageConnectionError(StorageError):
    """No database connection could be acquired"""


def error_body(status_code: int, message: str, data: Any = None) -> dict:
    return {"status": status_code, "data": data if data is not None else [], "message": message}


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error handlers to the application"""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if isinstance(exc, StorageError):
            logger.error(
                "Storage error",
                path=request.url.path,
                error=str(exc),
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=error_body(exc.status_code, "Internal Server Error"),
            )

        logger.info(
            "Request rejected",
            path=request.url.path,
            status=exc.status_code,
            reason=exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.message, exc.data),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=error_body(422, "Unprocessable Entity", jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body(500, "Internal Server Error"),
        )
