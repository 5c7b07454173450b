import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from exports_rw.infra.observability.metrics import LATENCY, REQUESTS


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _route_label(request: Request) -> str:
    route_template = request.scope.get("route", None)
    if route_template and hasattr(route_template, "path"):
        return route_template.path
    return request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request metrics and writes one structured log line per request.

    Export responses are streamed; the logged duration covers the time until
    response headers are sent, not the whole body.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        client_ip = _client_ip(request)
        logger = logging.getLogger("http")

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - start
            logger.exception(
                "request_error method=%s route=%s status=%s duration_ms=%.3f "
                "request_id=%s client_ip=%s query=%s user_agent=%s",
                request.method,
                request.url.path,
                500,
                round(elapsed * 1000, 3),
                request_id,
                client_ip or "-",
                request.url.query or "-",
                request.headers.get("User-Agent") or "-",
                extra={
                    "extra": {
                        "method": request.method,
                        "route": request.url.path,
                        "query": request.url.query,
                        "status": 500,
                        "duration_ms": round(elapsed * 1000, 3),
                        "request_id": request_id,
                        "client_ip": client_ip,
                        "user_agent": request.headers.get("User-Agent"),
                        "exception": repr(exc),
                    }
                },
            )
            raise

        elapsed = time.perf_counter() - start
        status_code = response.status_code
        route = _route_label(request)

        REQUESTS.labels(request.method, route, str(status_code)).inc()
        LATENCY.labels(request.method, route).observe(elapsed)

        # ensure request-id propagation
        if "X-Request-Id" not in response.headers:
            response.headers["X-Request-Id"] = request_id

        level = logging.INFO
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING

        duration_ms = round(elapsed * 1000, 3)
        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f "
            "request_id=%s client_ip=%s query=%s user_agent=%s",
            request.method,
            route,
            status_code,
            duration_ms,
            request_id,
            client_ip or "-",
            request.url.query or "-",
            request.headers.get("User-Agent") or "-",
            extra={
                "extra": {
                    "method": request.method,
                    "route": route,
                    "query": request.url.query,
                    "status": status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                    "client_ip": client_ip,
                    "user_agent": request.headers.get("User-Agent"),
                }
            },
        )
        return response
