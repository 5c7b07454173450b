import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exports_rw.api.v1.deps import get_services, require_api_key
from exports_rw.api.v1.routers.resources import build_resource_router
from exports_rw.api.v1.schemas.resources import ReadinessOut
from exports_rw.common.config import Settings, get_settings
from exports_rw.common.logging import setup_logging
from exports_rw.infra.observability.metrics import metrics_app
from exports_rw.infra.observability.middleware import MetricsMiddleware
from exports_rw.infra.storage.client import ObjectStore, StorageError
from exports_rw.services.bundle import ServiceBundle, get_service_bundle

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


def _describe_store_target(settings: Settings) -> str:
    if settings.STORAGE_BACKEND == "memory":
        return "memory://"
    bucket = settings.S3_BUCKET or "?"
    endpoint = settings.S3_ENDPOINT_URL or f"aws:{settings.S3_REGION}"
    return f"s3://{bucket} ({endpoint})"


def _format_store_context(settings: Settings) -> str:
    parts = [
        f"storage_backend={settings.STORAGE_BACKEND}",
        f"store_target={_describe_store_target(settings)}",
        f"content_prefix={settings.BUCKET_CONTENT_PREFIX or '<none>'}",
        f"concept_prefix={settings.BUCKET_CONCEPT_PREFIX or '<none>'}",
        f"workers={settings.EXPORT_WORKERS}",
    ]
    return ", ".join(parts)


def create_app(
    settings: Settings | None = None, store: ObjectStore | None = None
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    services = get_service_bundle(settings, store)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        startup_logger = logging.getLogger("exports_rw.startup")
        startup_logger.info(
            "Application started. [event=startup] (%s)",
            _format_store_context(settings),
        )
        yield

    app = FastAPI(
        lifespan=lifespan,
        title="Exports RW Service",
        version="v1.0",
        description="Date-partitioned content, concept and generic object store",
    )
    app.state.settings = settings
    app.state.services = services

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
    for resource in services.resources:
        app.include_router(
            build_resource_router(resource),
            prefix="/api/v1",
            tags=[resource.name],
            dependencies=[Depends(require_api_key)],
        )

    # Metrics
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
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
                "detail": jsonable_encoder(exc.errors()),
                "error_code": _resolve_error_code(422),
                "instance": str(request.url),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready", response_model=ReadinessOut)
    def ready(bundle: ServiceBundle = Depends(get_services)):
        try:
            bundle.store.check_access()
        except StorageError as exc:
            return ReadinessOut(status="not_ready", detail={"store": str(exc)})
        return ReadinessOut(status="ready")

    return app


if __name__ == "__main__":
    uvicorn.run("exports_rw.main:create_app", factory=True, host="0.0.0.0", port=8080)
