from __future__ import annotations

import logging
from dataclasses import dataclass

from exports_rw.domain.keys import is_reserved_key, local_name
from exports_rw.services.base import StoreScope, closing_pages

logger = logging.getLogger("exports_rw.locator")


@dataclass(frozen=True, slots=True)
class Location:
    partition: str
    found: bool


NOT_FOUND = Location(partition="", found=False)


class EntityLocator:
    """Finds the partition value of an entity's live object.

    Only the entity's own key prefix is listed, never the whole bucket.
    """

    def __init__(self, scope: StoreScope) -> None:
        self._scope = scope

    def locate(self, entity_id: str) -> Location:
        """Return the partition of the first stored key decoding to ``entity_id``.

        Raises:
            InvalidKeyPartError: If ``entity_id`` cannot name a stored entity.
            MalformedKeyError: If a key of this resource's shape under the
                entity prefix cannot be decoded.
            StorageError: If listing fails.
        """
        scope = self._scope
        entity_prefix = scope.entity_prefix(entity_id)
        pages = scope.store.iter_key_pages(prefix=entity_prefix)
        with closing_pages(pages):
            for page in pages:
                for key in page:
                    if is_reserved_key(
                        local_name(scope.prefix, key), scope.reserved_prefix
                    ):
                        continue
                    if not scope.codec.owns(scope.prefix, key):
                        continue
                    decoded_id, partition = scope.codec.decode(scope.prefix, key)
                    if decoded_id == entity_id:
                        return Location(partition=partition, found=True)
        logger.debug("entity_not_located entity_id=%s", entity_id)
        return NOT_FOUND
