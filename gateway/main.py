import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.api.deps import get_bucket_service
from gateway.api.routers.buckets import router as buckets_router
from gateway.api.routers.files import router as files_router
from gateway.api.schemas.health import HealthOut, ReadyOut
from gateway.app.services import BucketService
from gateway.app.services.bundle import ServiceBundle, get_service_bundle
from gateway.app.services.errors import (
    ErrorKind,
    Resource,
    StorageGatewayError,
    classify,
)
from gateway.common.config import get_settings
from gateway.common.logging import setup_logging
from gateway.infra.observability.metrics import STORAGE_ERRORS, metrics_app
from gateway.infra.observability.middleware import MetricsMiddleware
from gateway.infra.storage.client import StorageClient, StorageError

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    415: "unsupported_media_type",
    429: "too_many_requests",
    500: "internal_error",
    502: "bad_gateway",
    503: "service_unavailable",
}

OBJECT_NOT_FOUND_MESSAGE = "File not found in storage for given file name"
BUCKET_NOT_FOUND_MESSAGE = "Bucket not found"


def _normalize_detail(detail):
    if isinstance(detail, dict):
        maybe_code = detail.get("error_code")
        cleaned = {k: v for k, v in detail.items() if k != "error_code"}
        if len(cleaned) == 1 and "message" in cleaned:
            cleaned = cleaned["message"]
        if not cleaned:
            cleaned = None
        return cleaned, maybe_code if isinstance(maybe_code, str) else None
    return detail, None


def _resolve_error_code(status_code: int, override: str | None = None) -> str:
    if override:
        return override
    if status_code == 422:
        return "validation_error"
    return ERROR_CODE_BY_STATUS.get(status_code, "unknown_error")


def _resolve_storage_failure(exc: Exception) -> tuple[int, str]:
    """Map a storage failure to the status code and body shown to the caller."""
    if isinstance(exc, StorageGatewayError):
        kind, resource, message = exc.kind, exc.resource, exc.message
    else:
        # 未经包装的后端错误只会来自 bucket 操作
        kind, resource, message = classify(exc), Resource.BUCKET, str(exc)

    match kind, resource:
        case ErrorKind.NOT_FOUND, Resource.OBJECT:
            return 400, OBJECT_NOT_FOUND_MESSAGE
        case ErrorKind.NOT_FOUND, Resource.BUCKET:
            return 500, BUCKET_NOT_FOUND_MESSAGE
        case _:
            return 500, message


def _describe_storage_target(settings) -> str:
    endpoint = settings.S3_ENDPOINT_URL or "<aws default>"
    region = settings.S3_REGION or "<default region>"
    return f"bucket={settings.S3_BUCKET}, endpoint={endpoint}, region={region}"


def _ensure_default_bucket(services: ServiceBundle, settings) -> None:
    startup_logger = logging.getLogger("gateway.startup")
    target = _describe_storage_target(settings)
    startup_logger.info("正在检查默认存储桶。[event=default_bucket_check] (%s)", target)
    try:
        services.objects().ensure_default_bucket()
    except Exception as exc:
        startup_logger.error(
            "无法确保默认存储桶可用，应用启动中断，请检查 S3_BUCKET、凭证或网络配置。"
            " [event=default_bucket_failed] (%s，error=%s)",
            target,
            exc,
        )
        raise
    startup_logger.info(
        "默认存储桶就绪，应用继续启动。[event=default_bucket_ready] (%s)", target
    )


def create_app(storage_client: StorageClient | None = None) -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # 默认存储桶不可用时中断启动
        await run_in_threadpool(_ensure_default_bucket, app.state.services, settings)
        yield

    app = FastAPI(
        title="Storage Gateway",
        version="v1.0",
        description="Bucket and object lifecycle gateway over S3-compatible storage",
        lifespan=lifespan,
    )
    app.state.services = get_service_bundle(settings, storage_client)

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Routers
    app.include_router(buckets_router, prefix="/storage", tags=["buckets"])
    app.include_router(files_router, prefix="/storage", tags=["files"])

    # Metrics
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.exception_handler(StorageGatewayError)
    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: Exception):
        status_code, body = _resolve_storage_failure(exc)
        if isinstance(exc, StorageGatewayError):
            operation, kind = exc.operation.value, exc.kind.value
        else:
            operation, kind = "backend", classify(exc).value
        STORAGE_ERRORS.labels(operation, kind).inc()
        logging.getLogger("http").log(
            logging.WARNING if status_code < 500 else logging.ERROR,
            "storage_error status=%s operation=%s kind=%s method=%s path=%s "
            "request_id=%s error=%s",
            status_code,
            operation,
            kind,
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            exc,
            extra={
                "extra": {
                    "status": status_code,
                    "operation": operation,
                    "kind": kind,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return PlainTextResponse(body, status_code=status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger = logging.getLogger("http")
        normalized_detail, code_override = _normalize_detail(exc.detail)
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            normalized_detail,
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": normalized_detail,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            media_type="application/problem+json",
            content={
                "type": "about:blank",
                "title": "HTTP Error",
                "status": exc.status_code,
                "detail": normalized_detail,
                "error_code": _resolve_error_code(exc.status_code, code_override),
                "instance": str(request.url),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(
            status_code=422,
            media_type="application/problem+json",
            content={
                "type": "about:blank",
                "title": "Validation Error",
                "status": 422,
                # 确保可序列化
                "detail": jsonable_encoder(exc.errors()),
                "error_code": _resolve_error_code(422),
                "instance": str(request.url),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logging.getLogger("http").error(
            "unhandled_exception method=%s path=%s request_id=%s error=%r",
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            exc,
        )
        return PlainTextResponse(str(exc), status_code=500)

    @app.get("/health", response_model=HealthOut)
    async def health():
        return {"status": "ok"}

    @app.get("/ready", response_model=ReadyOut)
    def ready(buckets: BucketService = Depends(get_bucket_service)):
        try:
            if buckets.exists(settings.S3_BUCKET):
                return ReadyOut(status="ready", bucket=settings.S3_BUCKET)
            return ReadyOut(
                status="not_ready",
                bucket=settings.S3_BUCKET,
                detail="default bucket is missing",
            )
        except (StorageError, StorageGatewayError) as exc:
            return ReadyOut(
                status="not_ready", bucket=settings.S3_BUCKET, detail=str(exc)
            )

    return app


if __name__ == "__main__":
    uvicorn.run("gateway.main:create_app", host="0.0.0.0", port=8000, factory=True)
