from __future__ import annotations

import logging
import threading
from typing import Iterator

from exports_rw.domain.keys import MalformedKeyError, is_reserved_key, local_name
from exports_rw.services.base import StoreScope, closing_pages

logger = logging.getLogger("exports_rw.lister")


class BulkLister:
    """Enumerates the live, entity-bearing keys of one resource."""

    def __init__(self, scope: StoreScope, *, page_size: int | None = None) -> None:
        self._scope = scope
        self._page_size = page_size

    def check(self) -> None:
        """Single list call capped at one key; raises StorageError when unreachable."""
        pages = self._scope.store.iter_key_pages(
            prefix=self._scope.listing_prefix, page_size=1
        )
        with closing_pages(pages):
            next(iter(pages), None)

    def keys(self, cancel: threading.Event | None = None) -> Iterator[str]:
        """Yield full object keys, re-driving pagination from the start.

        Keys without this resource's shape (nested paths of other resources
        sharing the prefix) are not entities here and are left out.
        """
        scope = self._scope
        pages = scope.store.iter_key_pages(
            prefix=scope.listing_prefix, page_size=self._page_size
        )
        with closing_pages(pages):
            for page in pages:
                for key in page:
                    if cancel is not None and cancel.is_set():
                        return
                    if is_reserved_key(
                        local_name(scope.prefix, key), scope.reserved_prefix
                    ):
                        continue
                    if not scope.codec.owns(scope.prefix, key):
                        continue
                    yield key

    def ids(self, cancel: threading.Event | None = None) -> Iterator[str]:
        """Yield entity ids; undecodable keys are logged and skipped."""
        scope = self._scope
        for key in self.keys(cancel):
            try:
                entity_id, _ = scope.codec.decode(scope.prefix, key)
            except MalformedKeyError as exc:
                logger.warning(
                    "skipping_malformed_key key=%s error=%s",
                    key,
                    exc,
                    extra={"extra": {"key": key}},
                )
                continue
            yield entity_id

    def count(self) -> int:
        """Number of ids ``ids`` would yield."""
        total = sum(1 for _ in self.ids())
        logger.info("counted_objects count=%s", total, extra={"extra": {"count": total}})
        return total
