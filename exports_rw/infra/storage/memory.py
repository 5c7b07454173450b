"""In-memory object store.

Used by the test-suite and by ``STORAGE_BACKEND=memory`` for local runs.
Listing follows S3 semantics: keys come back in lexicographic order, in pages
of at most ``page_size`` keys.
"""

from __future__ import annotations

import io
import threading
from dataclasses import dataclass, field
from typing import Iterator

from exports_rw.infra.storage.client import StoredObject

DEFAULT_PAGE_SIZE = 1000


@dataclass
class InMemoryObjectStore:
    """Thread-safe dict-backed implementation of ObjectStore."""

    objects: dict[str, dict] = field(default_factory=dict)
    default_page_size: int = DEFAULT_PAGE_SIZE
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def put_object(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        with self._lock:
            self.objects[key] = {
                "body": bytes(body),
                "content_type": content_type,
                "metadata": dict(metadata or {}),
            }

    def get_object(self, *, key: str) -> StoredObject | None:
        with self._lock:
            obj = self.objects.get(key)
        if obj is None:
            return None
        return StoredObject(
            key=key,
            body=io.BytesIO(obj["body"]),
            content_type=obj["content_type"],
            metadata=dict(obj["metadata"]),
        )

    def delete_object(self, *, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)

    def iter_key_pages(
        self, *, prefix: str | None = None, page_size: int | None = None
    ) -> Iterator[list[str]]:
        size = int(page_size or self.default_page_size)
        with self._lock:
            keys = sorted(k for k in self.objects if k.startswith(prefix or ""))
        if not keys:
            yield []
            return
        for start in range(0, len(keys), size):
            yield keys[start : start + size]

    def head_exists(self, *, key: str) -> bool:
        with self._lock:
            return key in self.objects

    def check_access(self) -> None:
        return None

    def seed(self, key: str, body: bytes = b"{}", content_type: str | None = None):
        """Test helper to place an object without going through a service."""
        self.put_object(key=key, body=body, content_type=content_type)
