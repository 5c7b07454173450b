from __future__ import annotations

from exports_rw.infra.storage.client import StoredObject
from exports_rw.services.base import EntityNotFoundError, StoreScope
from exports_rw.services.locator import EntityLocator


class EntityReader:
    """Point reads of a single entity."""

    def __init__(
        self, scope: StoreScope, *, locator: EntityLocator | None = None
    ) -> None:
        self._scope = scope
        self._locator = locator or EntityLocator(scope)

    def _resolve_partition(self, entity_id: str, partition: str | None) -> str:
        if partition is not None:
            return partition
        location = self._locator.locate(entity_id)
        if not location.found:
            raise EntityNotFoundError(entity_id)
        return location.partition

    def get(self, entity_id: str, partition: str | None = None) -> StoredObject:
        """Fetch the entity's object; the caller closes its body.

        Without ``partition`` the live partition is located first.

        Raises:
            EntityNotFoundError: If no object exists.
            StorageError: If the store fails.
        """
        resolved = self._resolve_partition(entity_id, partition)
        obj = self._scope.store.get_object(key=self._scope.key_for(entity_id, resolved))
        if obj is None:
            raise EntityNotFoundError(entity_id)
        return obj

    def exists(self, entity_id: str, partition: str | None = None) -> bool:
        try:
            resolved = self._resolve_partition(entity_id, partition)
        except EntityNotFoundError:
            return False
        return self._scope.store.head_exists(
            key=self._scope.key_for(entity_id, resolved)
        )
