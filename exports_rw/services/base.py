from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from exports_rw.domain.keys import (
    DEFAULT_RESERVED_PREFIX,
    DatedKeyCodec,
    KeyCodec,
    check_unreserved_id,
    ensure_entity_first,
    list_prefix,
)
from exports_rw.infra.storage.client import ObjectStore


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class EntityNotFoundError(ServiceError):
    """Raised when no live object exists for the requested entity."""

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"Item not found: {entity_id}")
        self.entity_id = entity_id


class RenameCleanupError(ServiceError):
    """Raised when the old object could not be removed after a partition change.

    ``compensated`` tells whether the newly written object was removed again,
    leaving the pre-write state in place.
    """

    compensated = True

    def __init__(self, entity_id: str, old_key: str, new_key: str) -> None:
        super().__init__(
            f"Failed to remove {old_key} after writing {new_key} for {entity_id}"
        )
        self.entity_id = entity_id
        self.old_key = old_key
        self.new_key = new_key


class PartialFailureError(RenameCleanupError):
    """Raised when both the cleanup and the compensating delete failed.

    Two live objects may exist for the entity until the next write.
    """

    compensated = False


@dataclass(frozen=True, slots=True)
class StoreScope:
    """Where and how one resource kind lives in the bucket."""

    store: ObjectStore
    prefix: str = ""
    codec: KeyCodec = field(default_factory=DatedKeyCodec)
    reserved_prefix: str = DEFAULT_RESERVED_PREFIX

    def __post_init__(self) -> None:
        ensure_entity_first(self.codec)

    def key_for(self, entity_id: str, partition: str) -> str:
        check_unreserved_id(entity_id, self.reserved_prefix)
        return self.codec.encode(self.prefix, entity_id, partition)

    def entity_prefix(self, entity_id: str) -> str:
        check_unreserved_id(entity_id, self.reserved_prefix)
        return self.codec.entity_prefix(self.prefix, entity_id)

    @property
    def listing_prefix(self) -> str | None:
        return list_prefix(self.prefix)


@contextmanager
def closing_pages(pages: Iterator[list[str]]) -> Iterator[Iterator[list[str]]]:
    """Close a lazily paginated listing even when iteration stops early."""
    try:
        yield pages
    finally:
        close = getattr(pages, "close", None)
        if close is not None:
            close()
