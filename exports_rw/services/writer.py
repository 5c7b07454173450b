"""Upsert and delete protocol for entities with date-dependent keys.

The object store has no rename, so a partition change is carried out as
"write new key, delete old key". When the old key cannot be removed the new
one is deleted again, so that an entity never keeps two live objects unless
both deletes fail.
"""

from __future__ import annotations

import enum
import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from exports_rw.infra.observability.metrics import WRITES
from exports_rw.infra.storage.client import StorageError
from exports_rw.services.base import (
    EntityNotFoundError,
    PartialFailureError,
    RenameCleanupError,
    StoreScope,
)
from exports_rw.services.locator import EntityLocator

logger = logging.getLogger("exports_rw.writer")

CORRELATION_METADATA_KEY = "transaction_id"


class WriteOutcome(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    UPDATED_IN_PLACE = "UPDATED_IN_PLACE"

    @property
    def created(self) -> bool:
        return self is WriteOutcome.CREATED


class EntityLocks:
    """Process-local mutexes keyed by entity id, dropped when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, entity_id: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(entity_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[entity_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                _, users = self._locks[entity_id]
                if users <= 1:
                    del self._locks[entity_id]
                else:
                    self._locks[entity_id] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class VersionedWriter:
    """Keeps at most one live object per entity across partition changes.

    No retries are made: every step issues exactly one store call, plus the
    single compensating delete on a failed rename.
    """

    def __init__(
        self,
        scope: StoreScope,
        *,
        locator: EntityLocator | None = None,
        locks: EntityLocks | None = None,
    ) -> None:
        self._scope = scope
        self._locator = locator or EntityLocator(scope)
        self._locks = locks

    @contextmanager
    def _serialized(self, entity_id: str) -> Iterator[None]:
        if self._locks is None:
            yield
            return
        with self._locks.hold(entity_id):
            yield

    def write(
        self,
        entity_id: str,
        partition: str,
        body: bytes,
        *,
        content_type: str | None = None,
        correlation_id: str | None = None,
    ) -> WriteOutcome:
        """Store ``body`` as the live object of ``entity_id``.

        Raises:
            InvalidKeyPartError: If the id or partition cannot be encoded.
            MalformedKeyError: If an existing key of the entity is unreadable.
            StorageError: If locating or writing fails; nothing was changed.
            RenameCleanupError: If the old object could not be removed.
        """
        scope = self._scope
        new_key = scope.key_for(entity_id, partition)
        metadata = {CORRELATION_METADATA_KEY: correlation_id or ""}

        with self._serialized(entity_id):
            location = self._locator.locate(entity_id)

            scope.store.put_object(
                key=new_key,
                body=body,
                content_type=content_type or None,
                metadata=metadata,
            )

            if not location.found:
                outcome = WriteOutcome.CREATED
            elif location.partition == partition:
                outcome = WriteOutcome.UPDATED_IN_PLACE
            else:
                old_key = scope.key_for(entity_id, location.partition)
                self._remove_previous(entity_id, old_key, new_key, correlation_id)
                outcome = WriteOutcome.UPDATED

        logger.info(
            "write_succeeded entity_id=%s outcome=%s transaction_id=%s",
            entity_id,
            outcome.value,
            correlation_id,
            extra={
                "extra": {
                    "entity_id": entity_id,
                    "key": new_key,
                    "outcome": outcome.value,
                    "transaction_id": correlation_id,
                }
            },
        )
        WRITES.labels(outcome.value).inc()
        return outcome

    def _remove_previous(
        self,
        entity_id: str,
        old_key: str,
        new_key: str,
        correlation_id: str | None,
    ) -> None:
        store = self._scope.store
        try:
            store.delete_object(key=old_key)
        except StorageError as cleanup_exc:
            logger.error(
                "rename_cleanup_failed entity_id=%s old_key=%s new_key=%s error=%s",
                entity_id,
                old_key,
                new_key,
                cleanup_exc,
                extra={
                    "extra": {
                        "entity_id": entity_id,
                        "old_key": old_key,
                        "new_key": new_key,
                        "transaction_id": correlation_id,
                    }
                },
            )
            try:
                store.delete_object(key=new_key)
            except StorageError as compensation_exc:
                logger.error(
                    "compensating_delete_failed entity_id=%s key=%s error=%s",
                    entity_id,
                    new_key,
                    compensation_exc,
                    extra={
                        "extra": {
                            "entity_id": entity_id,
                            "key": new_key,
                            "transaction_id": correlation_id,
                        }
                    },
                )
                raise PartialFailureError(entity_id, old_key, new_key) from cleanup_exc
            raise RenameCleanupError(entity_id, old_key, new_key) from cleanup_exc

    def delete(self, entity_id: str, partition: str | None = None) -> str:
        """Delete the live object of ``entity_id`` and return its key.

        When ``partition`` is given it must match the live partition.

        Raises:
            EntityNotFoundError: If the entity has no live object.
            StorageError: If locating or deleting fails.
        """
        with self._serialized(entity_id):
            location = self._locator.locate(entity_id)
            if not location.found:
                raise EntityNotFoundError(entity_id)
            if partition is not None and partition != location.partition:
                raise EntityNotFoundError(entity_id)

            key = self._scope.key_for(entity_id, location.partition)
            self._scope.store.delete_object(key=key)

        logger.info(
            "delete_succeeded entity_id=%s key=%s",
            entity_id,
            key,
            extra={"extra": {"entity_id": entity_id, "key": key}},
        )
        return key
