"""Object store protocol and data types.

This module defines the narrow interface the blob-store services rely on:
put, get, delete, paginated prefix listing and a couple of checks used by
health checks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Mapping, Protocol


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(slots=True)
class StoredObject:
    """An object fetched from storage.

    ``body`` is an open, readable stream; callers must close it.
    """

    key: str
    body: BinaryIO
    content_type: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def read_all(self) -> bytes:
        try:
            return self.body.read()
        finally:
            self.body.close()


class ObjectStore(Protocol):
    """Protocol defining the operations required from a storage backend."""

    def put_object(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store ``body`` under ``key``, replacing any existing object.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def get_object(self, *, key: str) -> StoredObject | None:
        """Fetch an object.

        Returns:
            The stored object, or None when no object exists under ``key``.

        Raises:
            StorageError: For any failure other than a missing key.
        """
        ...

    def delete_object(self, *, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def iter_key_pages(
        self, *, prefix: str | None = None, page_size: int | None = None
    ) -> Iterator[list[str]]:
        """Yield pages of object keys in listing order.

        Pages are requested lazily, so a caller that stops iterating early
        never triggers the remaining requests.

        Raises:
            StorageError: If a page request fails.
        """
        ...

    def head_exists(self, *, key: str) -> bool:
        """Return whether an object exists under ``key``.

        Raises:
            StorageError: For any failure other than a missing key.
        """
        ...

    def check_access(self) -> None:
        """Verify the configured bucket is reachable.

        Raises:
            StorageError: If the bucket cannot be accessed.
        """
        ...
