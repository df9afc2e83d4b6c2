import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# 4xx details are caller-safe; 5xx details are logged and replaced by default_detail
class GatewayError(Exception):
    status_code = 500
    code = "internal_error"
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthenticated(GatewayError):
    status_code = 401
    code = "unauthenticated"
    default_detail = "Not authenticated"


class Forbidden(GatewayError):
    status_code = 403
    code = "forbidden"
    default_detail = "Forbidden"


class ValidationError(GatewayError):
    status_code = 400
    code = "validation_error"
    default_detail = "Invalid request"


class InvalidPath(GatewayError):
    status_code = 403
    code = "invalid_path"
    default_detail = "Invalid file path"


class NotFound(GatewayError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class StorageWriteFailed(GatewayError):
    code = "storage_write_failed"
    default_detail = "Failed to store file"


class RemoteFetchFailed(GatewayError):
    code = "remote_fetch_failed"
    default_detail = "Failed to download file"


class InternalError(GatewayError):
    pass


async def _gateway_error_handler(request: Request, exc: GatewayError):
    headers = {"WWW-Authenticate": "Session"} if isinstance(exc, Unauthenticated) else None
    detail = exc.detail
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail)
        detail = exc.default_detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": detail},
        headers=headers,
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    err = ValidationError(f"Invalid or missing fields: {', '.join(f for f in fields if f)}")
    return await _gateway_error_handler(request, err)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "%s on %s %s", type(exc).__name__, request.method, request.url.path, exc_info=exc
    )
    err = InternalError()
    return JSONResponse(status_code=err.status_code, content={"error": err.code, "detail": err.detail})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
