from __future__ import annotations

import logging
import uuid

from fastapi import Header, HTTPException, Request

from exports_rw.services.bundle import ServiceBundle

logger = logging.getLogger("http")


def get_services(request: Request) -> ServiceBundle:
    return request.app.state.services


def new_transaction_id() -> str:
    return f"tid_{uuid.uuid4().hex[:10]}"


def get_request_context(
    request: Request,
    x_request_id: str | None = Header(default=None),
    content_type: str | None = Header(default=None),
):
    return {
        "request_id": x_request_id
        or getattr(request.state, "request_id", None)
        or new_transaction_id(),
        "content_type": content_type or None,
    }


def require_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> None:
    settings = request.app.state.settings
    if settings.API_KEY_ENABLED:
        api_key_expected = getattr(settings, "API_KEY", None)
        if not x_api_key or (api_key_expected and x_api_key != api_key_expected):
            preview = f"{x_api_key[:4]}***" if x_api_key else "<missing>"
            logger.warning("api_key_mismatch api_key_preview=%s", preview)
            raise HTTPException(status_code=401, detail="Invalid API key")
