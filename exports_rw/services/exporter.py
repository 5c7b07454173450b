"""Bounded-concurrency bulk export.

``export_all`` runs a three-stage pipeline over bounded queues::

    lister thread -> keys queue -> W fetch workers -> bodies queue -> sink -> pipe

The sink copies bodies into the pipe in arrival order, so record order is not
key order. A body is read completely before any of it is written; an object
whose read fails midway is dropped whole. Every stage blocks on full queues,
which propagates a slow reader all the way back to listing. Closing the
returned stream sets a cancellation event that every stage checks between
items and while waiting on a queue.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any, Iterator

from exports_rw.infra.observability.metrics import EXPORT_OBJECTS
from exports_rw.infra.storage.client import StorageError, StoredObject
from exports_rw.services.base import StoreScope
from exports_rw.services.lister import BulkLister

logger = logging.getLogger("exports_rw.export")

DEFAULT_WORKERS = 10
# three times the default list page size
KEY_QUEUE_SIZE = 3000
PIPE_CHUNKS = 16
CHUNK_SIZE = 64 * 1024
POLL_INTERVAL = 0.05
RECORD_SEPARATOR = b"\n"

_EOF = object()
_CANCELLED = object()


def _put(q: queue.Queue, item: Any, cancel: threading.Event) -> bool:
    while True:
        if cancel.is_set():
            return False
        try:
            q.put(item, timeout=POLL_INTERVAL)
            return True
        except queue.Full:
            continue


def _get(q: queue.Queue, cancel: threading.Event) -> Any:
    while True:
        if cancel.is_set():
            return _CANCELLED
        try:
            return q.get(timeout=POLL_INTERVAL)
        except queue.Empty:
            continue


def _close_body(obj: StoredObject) -> None:
    try:
        obj.body.close()
    except Exception:  # pragma: no cover - closing a broken stream
        logger.debug("body_close_failed key=%s", obj.key, exc_info=True)


class ExportStream:
    """Read end of an export pipe: an iterator of byte chunks."""

    def __init__(self, pipe: queue.Queue, cancel: threading.Event) -> None:
        self._pipe = pipe
        self._cancel = cancel
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        if self._finished:
            raise StopIteration
        item = _get(self._pipe, self._cancel)
        if item is _EOF or item is _CANCELLED:
            self._finished = True
            raise StopIteration
        return item

    def read(self) -> bytes:
        """Drain the stream into memory."""
        return b"".join(self)

    def close(self) -> None:
        """Stop producers; already queued output is discarded."""
        self._finished = True
        self._cancel.set()

    def __enter__(self) -> "ExportStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class BulkExporter:
    """Streams every live object (or just its id) of one resource."""

    def __init__(
        self,
        scope: StoreScope,
        *,
        workers: int = DEFAULT_WORKERS,
        lister: BulkLister | None = None,
        key_queue_size: int = KEY_QUEUE_SIZE,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._scope = scope
        self._workers = int(workers)
        self._lister = lister or BulkLister(scope)
        self._key_queue_size = key_queue_size

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def body_queue_size(self) -> int:
        return max(1, int(self._workers * 1.5))

    def export_all(self) -> ExportStream:
        """Start the fetch pipeline and return its output stream.

        Raises:
            StorageError: If the listing precheck fails; no thread is started.
        """
        self._lister.check()

        cancel = threading.Event()
        keys: queue.Queue = queue.Queue(maxsize=self._key_queue_size)
        bodies: queue.Queue = queue.Queue(maxsize=self.body_queue_size)
        pipe: queue.Queue = queue.Queue(maxsize=PIPE_CHUNKS)

        workers = [
            threading.Thread(
                target=self._fetch_worker,
                args=(keys, bodies, cancel),
                name=f"export-worker-{n}",
                daemon=True,
            )
            for n in range(self._workers)
        ]
        threads = [
            threading.Thread(
                target=self._sink,
                args=(bodies, pipe, cancel),
                name="export-sink",
                daemon=True,
            ),
            *workers,
            threading.Thread(
                target=self._close_bodies_when_done,
                args=(workers, bodies, cancel),
                name="export-joiner",
                daemon=True,
            ),
            threading.Thread(
                target=self._list_keys,
                args=(keys, cancel),
                name="export-lister",
                daemon=True,
            ),
        ]
        for thread in threads:
            thread.start()

        logger.info(
            "export_started workers=%s prefix=%s",
            self._workers,
            self._scope.prefix,
            extra={"extra": {"workers": self._workers, "prefix": self._scope.prefix}},
        )
        return ExportStream(pipe, cancel)

    def export_ids(self) -> ExportStream:
        """Stream ``{"ID": "<entity id>"}`` lines, one per live object.

        Raises:
            StorageError: If the listing precheck fails; no thread is started.
        """
        self._lister.check()

        cancel = threading.Event()
        pipe: queue.Queue = queue.Queue(maxsize=PIPE_CHUNKS)
        threading.Thread(
            target=self._encode_ids,
            args=(pipe, cancel),
            name="export-ids",
            daemon=True,
        ).start()
        return ExportStream(pipe, cancel)

    def _list_keys(self, keys: queue.Queue, cancel: threading.Event) -> None:
        try:
            for key in self._lister.keys(cancel):
                if not _put(keys, key, cancel):
                    return
        except StorageError as exc:
            logger.error(
                "export_listing_failed error=%s",
                exc,
                extra={"extra": {"prefix": self._scope.prefix}},
            )
        finally:
            for _ in range(self._workers):
                if not _put(keys, _EOF, cancel):
                    break

    def _fetch_worker(
        self, keys: queue.Queue, bodies: queue.Queue, cancel: threading.Event
    ) -> None:
        store = self._scope.store
        while True:
            key = _get(keys, cancel)
            if key is _EOF or key is _CANCELLED:
                return
            try:
                obj = store.get_object(key=key)
            except StorageError as exc:
                EXPORT_OBJECTS.labels("fetch_failed").inc()
                logger.error(
                    "export_fetch_failed key=%s error=%s",
                    key,
                    exc,
                    extra={"extra": {"key": key}},
                )
                continue
            if obj is None:
                EXPORT_OBJECTS.labels("vanished").inc()
                logger.warning("export_object_vanished key=%s", key)
                continue
            if not _put(bodies, obj, cancel):
                _close_body(obj)
                return

    def _close_bodies_when_done(
        self,
        workers: list[threading.Thread],
        bodies: queue.Queue,
        cancel: threading.Event,
    ) -> None:
        for worker in workers:
            worker.join()
        if not cancel.is_set() and _put(bodies, _EOF, cancel):
            return
        while True:
            try:
                item = bodies.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, StoredObject):
                _close_body(item)

    def _sink(
        self, bodies: queue.Queue, pipe: queue.Queue, cancel: threading.Event
    ) -> None:
        exported = 0
        try:
            while True:
                obj = _get(bodies, cancel)
                if obj is _EOF or obj is _CANCELLED:
                    break
                if self._copy(obj, pipe, cancel):
                    exported += 1
        finally:
            _put(pipe, _EOF, cancel)
            logger.info(
                "export_finished exported=%s cancelled=%s",
                exported,
                cancel.is_set(),
                extra={"extra": {"exported": exported, "cancelled": cancel.is_set()}},
            )

    def _copy(
        self, obj: StoredObject, pipe: queue.Queue, cancel: threading.Event
    ) -> bool:
        # a record reaches the pipe only once its body was read completely
        chunks: list[bytes] = []
        try:
            while True:
                if cancel.is_set():
                    return False
                chunk = obj.body.read(CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
        except Exception as exc:
            EXPORT_OBJECTS.labels("copy_failed").inc()
            logger.error(
                "export_copy_failed key=%s error=%s",
                obj.key,
                exc,
                extra={"extra": {"key": obj.key}},
            )
            return False
        finally:
            _close_body(obj)
        chunks.append(RECORD_SEPARATOR)
        for chunk in chunks:
            if not _put(pipe, chunk, cancel):
                return False
        EXPORT_OBJECTS.labels("exported").inc()
        return True

    def _encode_ids(self, pipe: queue.Queue, cancel: threading.Event) -> None:
        try:
            for entity_id in self._lister.ids(cancel):
                line = json.dumps({"ID": entity_id}, separators=(",", ":")) + "\n"
                if not _put(pipe, line.encode("utf-8"), cancel):
                    return
        except StorageError as exc:
            logger.error(
                "export_ids_listing_failed error=%s",
                exc,
                extra={"extra": {"prefix": self._scope.prefix}},
            )
        finally:
            _put(pipe, _EOF, cancel)
