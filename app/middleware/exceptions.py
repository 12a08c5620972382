from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.core.exceptions import AppError
from app.schemas.response import ErrorResponse
import logging
import uuid

logger = logging.getLogger(__name__)

def _get_error_code(status_code: int) -> str:
    code_map = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        410: "GONE",
        422: "VALIDATION_ERROR",
        500: "INTERNAL_SERVER_ERROR",
        503: "SERVICE_UNAVAILABLE",
    }
    return code_map.get(status_code, f"HTTP_{status_code}")

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    error_response = ErrorResponse.build(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"validation_errors": jsonable_encoder(exc.errors())},
        path=str(request.url),
        request_id=request_id
    )
    logger.warning(f"[{request_id}] Validation error: {exc.errors()}", extra={"request_id": request_id})
    return JSONResponse(status_code=422, content=error_response.model_dump())

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    request_id = _request_id(request)
    if isinstance(exc, AppError):
        code, message, details = exc.code, exc.message, exc.details
    else:
        code = _get_error_code(exc.status_code)
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        details = None
    error_response = ErrorResponse.build(
        code=code,
        message=message,
        details=details,
        path=str(request.url),
        request_id=request_id
    )
    logger.warning(f"[{request_id}] HTTP {exc.status_code} {code}: {message}", extra={"request_id": request_id})
    return JSONResponse(status_code=exc.status_code, content=error_response.model_dump(), headers=getattr(exc, "headers", None))

async def global_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, StarletteHTTPException):
        return await http_exception_handler(request, exc)

    request_id = _request_id(request)
    error_response = ErrorResponse.build(
        code="INTERNAL_SERVER_ERROR",
        message="An unexpected error occurred",
        details={"error_type": type(exc).__name__},
        path=str(request.url),
        request_id=request_id
    )
    logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True, extra={"request_id": request_id})
    return JSONResponse(status_code=500, content=error_response.model_dump())
