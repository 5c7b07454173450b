"""Tests for EntityLocator."""

from __future__ import annotations

import pytest

from exports_rw.domain.keys import (
    DatedKeyCodec,
    FlatKeyCodec,
    InvalidKeyPartError,
    MalformedKeyError,
)
from exports_rw.infra.storage.client import StorageError
from exports_rw.services.base import StoreScope
from exports_rw.services.locator import EntityLocator
from tests.services.mock_storage import FaultyObjectStore, RecordingObjectStore

UUID = "89d15f70-640d-11e4-9803-0800200c9a66"
OTHER = "22f53313-85c6-46b2-94e7-cfde9322f26c"


@pytest.fixture()
def store():
    return RecordingObjectStore(default_page_size=1)


@pytest.fixture()
def scope(store):
    return StoreScope(store=store, prefix="content", codec=DatedKeyCodec())


@pytest.fixture()
def locator(scope):
    return EntityLocator(scope)


class TestLocate:
    def test_finds_partition_of_live_object(self, store, locator):
        store.seed(f"content/{UUID}_2017-09-10.json")

        location = locator.locate(UUID)

        assert location.found
        assert location.partition == "2017-09-10"

    def test_missing_entity_is_not_found_without_error(self, store, locator):
        store.seed(f"content/{OTHER}_2017-09-10.json")

        location = locator.locate(UUID)

        assert not location.found
        assert location.partition == ""

    def test_lists_only_the_entity_prefix(self, store, locator):
        store.seed(f"content/{OTHER}_2017-09-10.json")
        store.seed(f"content/{UUID}_2017-09-10.json")

        locator.locate(UUID)

        assert store.list_prefixes == [f"content/{UUID}"]

    def test_returns_first_match_in_listing_order(self, store, locator):
        # inconsistent pre-migration state: several dates for one entity
        store.seed(f"content/{UUID}_2017-09-12.json")
        store.seed(f"content/{UUID}_2017-09-10.json")
        store.seed(f"content/{UUID}_2017-09-11.json")

        assert locator.locate(UUID).partition == "2017-09-10"

    def test_match_on_first_page_stops_pagination(self, store, locator):
        for day in range(10, 15):
            store.seed(f"content/{UUID}_2017-09-{day}.json")

        locator.locate(UUID)

        assert store.pages_served == 1

    def test_drains_pages_until_match(self, store, locator):
        # longer ids sharing the textual prefix sort first and do not match
        store.seed(f"content/{UUID}0_2017-09-10.json")
        store.seed(f"content/{UUID}1_2017-09-10.json")
        store.seed(f"content/{UUID}_2017-09-10.json")

        location = locator.locate(UUID)

        assert location.found
        assert store.pages_served == 3

    def test_skips_placeholder_keys_under_entity_prefix(self, store, locator):
        store.seed(f"content/{UUID}_2017-09-10/")

        assert not locator.locate(UUID).found

    def test_malformed_key_raises(self, store, locator):
        store.seed(f"content/{UUID}.json")

        with pytest.raises(MalformedKeyError):
            locator.locate(UUID)

    def test_propagates_storage_errors(self):
        store = FaultyObjectStore(fail_list=True)
        locator = EntityLocator(StoreScope(store=store, prefix="content"))

        with pytest.raises(StorageError, match="injected list failure"):
            locator.locate(UUID)


class TestForeignKeys:
    def test_flat_scope_ignores_nested_keys_of_other_resources(self):
        store = RecordingObjectStore()
        store.seed(f"content/{UUID}_2017-09-10.json")
        store.seed("c")
        scope = StoreScope(store=store, prefix="", codec=FlatKeyCodec())

        location = EntityLocator(scope).locate("c")

        assert location.found
        assert location.partition == ""

    def test_flat_scope_without_match_is_not_found(self):
        store = RecordingObjectStore()
        store.seed(f"content/{UUID}_2017-09-10.json")
        scope = StoreScope(store=store, prefix="", codec=FlatKeyCodec())

        assert not EntityLocator(scope).locate("c").found

    def test_dated_scope_ignores_flat_key_with_same_name(self):
        store = RecordingObjectStore()
        store.seed("abc")
        scope = StoreScope(store=store, prefix="", codec=DatedKeyCodec())

        assert not EntityLocator(scope).locate("abc").found

    def test_flat_scope_ignores_dated_key_with_same_id(self):
        store = RecordingObjectStore()
        store.seed("abc_2020-01-01.json")
        scope = StoreScope(store=store, prefix="", codec=FlatKeyCodec())

        assert not EntityLocator(scope).locate("abc").found

    def test_reserved_entity_id_is_rejected_without_listing(self, store, locator):
        with pytest.raises(InvalidKeyPartError):
            locator.locate("__x")

        assert store.list_prefixes == []
