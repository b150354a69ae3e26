"""错误信封与异常处理器。

所有失败响应统一为 {"success": false, "error": {"message", "code", "details"?}}，
details 只在开发环境返回。
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rag_core.config.settings import settings
from rag_core.domain.exceptions import AppError
from rag_core.infrastructure.logging.logger import logger


def error_body(message: str, code: str, details: Optional[Any] = None, *, expose_details: bool = False) -> Dict[str, Any]:
    error: Dict[str, Any] = {"message": message, "code": code}
    if expose_details and details is not None:
        error["details"] = details
    return {"success": False, "error": error}


def register_exception_handlers(app: FastAPI, cfg=settings) -> None:
    development = cfg.environment == "development"

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        logger.error(
            "Error occurred",
            extra={
                "extra": {
                    "error": exc.message,
                    "code": exc.code,
                    "url": str(request.url.path),
                    "method": request.method,
                }
            },
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=error_body(exc.message, exc.code, exc.details, expose_details=development),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body("Invalid request data", "VALIDATION_ERROR", details, expose_details=development),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            message, code = f"Route {request.method} {request.url.path} not found", "NOT_FOUND"
        else:
            message, code = str(exc.detail), "HTTP_ERROR"
        return JSONResponse(status_code=exc.status_code, content=error_body(message, code))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error",
            extra={"extra": {"url": str(request.url.path), "method": request.method}},
        )
        message = "Internal server error" if cfg.is_production else str(exc)
        return JSONResponse(status_code=500, content=error_body(message, "INTERNAL_SERVER_ERROR"))
