from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from autoshop.common.response import ErrorResponse
from autoshop.core.config import settings
from autoshop.core.exceptions import ServiceError
from autoshop.logger_config import logger


def register_error_handlers(app: FastAPI):
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, e: ServiceError):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {e.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({e.status_code}): {e.message}")
        message = e.message
        if e.status_code >= 500 and settings.is_production:
            message = "Internal Server Error"
        return ErrorResponse.send(message=message, status_code=e.status_code, errors=e.errors)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, e: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
                "message": error.get("msg"),
                "type": error.get("type"),
            }
            for error in e.errors()
        ]
        return ErrorResponse.send(
            message="Validation failed",
            status_code=status.HTTP_400_BAD_REQUEST,
            errors=errors,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, e: StarletteHTTPException):
        return ErrorResponse.send(message=str(e.detail), status_code=e.status_code)

    @app.exception_handler(Exception)
    async def handle_exception(request: Request, e: Exception):
        # Log the exception with traceback
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return ErrorResponse.send(
            message="Internal Server Error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            errors=[] if settings.is_production else [{"details": str(e)}],
        )
