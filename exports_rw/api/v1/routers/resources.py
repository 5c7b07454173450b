"""Resource API routers.

One router is built per stored resource kind (content, concept, generic).
Routes are registered on router values owned by ``create_app``; nothing is
registered at import time.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import AsyncIterator, Iterator

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

from exports_rw.api.v1.deps import get_request_context, get_services
from exports_rw.api.v1.schemas.resources import MessageOut
from exports_rw.domain.keys import InvalidKeyPartError, MalformedKeyError
from exports_rw.infra.storage.client import StorageError
from exports_rw.services.base import (
    EntityNotFoundError,
    PartialFailureError,
    RenameCleanupError,
)
from exports_rw.services.bundle import Resource, ResourceServices, ServiceBundle
from exports_rw.services.exporter import ExportStream

logger = logging.getLogger("http")

DATE_REQUIRED_MESSAGE = "Required query param 'date' was not provided."
NOT_FOUND_MESSAGE = "Item not found"
UNAVAILABLE_MESSAGE = "Service currently unavailable"
BAD_GATEWAY_MESSAGE = "Error while communicating to other service"


@contextmanager
def translate_service_errors(entity_id: str | None = None) -> Iterator[None]:
    """Map service and storage failures onto coarse HTTP errors."""
    try:
        yield
    except EntityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE) from exc
    except InvalidKeyPartError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except MalformedKeyError as exc:
        logger.error("malformed_key entity_id=%s error=%s", entity_id, exc)
        raise HTTPException(
            status_code=500,
            detail={"message": "Unknown internal error", "error_code": "malformed_key"},
        ) from exc
    except RenameCleanupError as exc:
        code = (
            "partial_failure" if isinstance(exc, PartialFailureError) else "rename_failed"
        )
        raise HTTPException(
            status_code=503,
            detail={
                "message": UNAVAILABLE_MESSAGE,
                "compensated": exc.compensated,
                "error_code": code,
            },
        ) from exc
    except StorageError as exc:
        logger.error(
            "storage_error entity_id=%s error=%s",
            entity_id,
            exc,
            extra={"extra": {"entity_id": entity_id, "error": str(exc)}},
        )
        raise HTTPException(status_code=503, detail=UNAVAILABLE_MESSAGE) from exc


async def _stream_chunks(stream: ExportStream) -> AsyncIterator[bytes]:
    try:
        async for chunk in iterate_in_threadpool(stream):
            yield chunk
    finally:
        # client gone or export drained; either way stop the producers
        stream.close()


def build_resource_router(resource: Resource) -> APIRouter:
    router = APIRouter()
    base = f"/{resource.path}"
    name = resource.name

    def services(bundle: ServiceBundle = Depends(get_services)) -> ResourceServices:
        return bundle.for_resource(name)

    def partition_for_write(date: str | None) -> str:
        if not resource.dated:
            return ""
        if not date:
            raise HTTPException(status_code=400, detail=DATE_REQUIRED_MESSAGE)
        return date

    def partition_for_read(date: str | None) -> str | None:
        if not resource.dated:
            return ""
        return date or None

    @router.get(
        f"{base}/__count",
        summary=f"Count {name} objects",
        name=f"{name}_count",
    )
    def count(svc: ResourceServices = Depends(services)) -> int:
        with translate_service_errors():
            return svc.lister.count()

    @router.get(
        f"{base}/__ids",
        summary=f"Stream {name} ids",
        description="Newline-delimited JSON records of the form {\"ID\": \"...\"}.",
        name=f"{name}_ids",
    )
    async def export_ids(svc: ResourceServices = Depends(services)):
        with translate_service_errors():
            stream = await run_in_threadpool(svc.exporter.export_ids)
        return StreamingResponse(
            _stream_chunks(stream), media_type="application/octet-stream"
        )

    @router.get(
        f"{base}/__all",
        summary=f"Stream every {name} object",
        description="Object bodies in fetch-completion order, one per line.",
        name=f"{name}_all",
    )
    async def export_all(svc: ResourceServices = Depends(services)):
        with translate_service_errors():
            stream = await run_in_threadpool(svc.exporter.export_all)
        return StreamingResponse(
            _stream_chunks(stream), media_type="application/octet-stream"
        )

    @router.put(
        f"{base}/{{entity_id}}",
        response_model=MessageOut,
        summary=f"Create or replace a {name} object",
        name=f"{name}_write",
    )
    async def write(
        entity_id: str,
        request: Request,
        date: str | None = Query(default=None),
        ctx: dict = Depends(get_request_context),
        svc: ResourceServices = Depends(services),
    ):
        partition = partition_for_write(date)
        body = await request.body()
        with translate_service_errors(entity_id):
            outcome = await run_in_threadpool(
                svc.writer.write,
                entity_id,
                partition,
                body,
                content_type=ctx["content_type"],
                correlation_id=ctx["request_id"],
            )
        if outcome.created:
            return JSONResponse(
                status_code=status.HTTP_201_CREATED,
                content=MessageOut(message="CREATED").model_dump(),
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=MessageOut(message="UPDATED").model_dump(),
        )

    @router.get(
        f"{base}/{{entity_id}}",
        summary=f"Fetch a {name} object",
        name=f"{name}_get",
    )
    def get(
        entity_id: str,
        date: str | None = Query(default=None),
        svc: ResourceServices = Depends(services),
    ) -> Response:
        with translate_service_errors(entity_id):
            obj = svc.reader.get(entity_id, partition_for_read(date))
        try:
            payload = obj.read_all()
        except Exception as exc:
            logger.error(
                "body_read_failed entity_id=%s error=%s",
                entity_id,
                exc,
                extra={"extra": {"entity_id": entity_id, "key": obj.key}},
            )
            raise HTTPException(status_code=502, detail=BAD_GATEWAY_MESSAGE) from exc
        return Response(
            content=payload,
            media_type=obj.content_type or "application/octet-stream",
        )

    @router.head(
        f"{base}/{{entity_id}}",
        summary=f"Check a {name} object exists",
        name=f"{name}_head",
    )
    def head(
        entity_id: str,
        date: str | None = Query(default=None),
        svc: ResourceServices = Depends(services),
    ) -> Response:
        with translate_service_errors(entity_id):
            found = svc.reader.exists(entity_id, partition_for_read(date))
        return Response(status_code=200 if found else 404)

    @router.delete(
        f"{base}/{{entity_id}}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary=f"Delete a {name} object",
        name=f"{name}_delete",
    )
    def delete(
        entity_id: str,
        date: str | None = Query(default=None),
        svc: ResourceServices = Depends(services),
    ) -> Response:
        with translate_service_errors(entity_id):
            svc.writer.delete(entity_id, partition_for_read(date))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router
