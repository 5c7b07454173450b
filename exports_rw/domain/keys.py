"""Object key naming for stored entities.

Every codec keeps the entity id as the first variable segment of the key so
that listing with ``entity_prefix`` finds all objects of one entity without
scanning the whole bucket.
"""

from __future__ import annotations

from typing import Protocol

PATH_SEPARATOR = "/"
DEFAULT_RESERVED_PREFIX = "__"


class MalformedKeyError(ValueError):
    """Raised when a listed object key cannot be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Cannot decode object key {key!r}: {reason}")
        self.key = key


class InvalidKeyPartError(ValueError):
    """Raised when an entity id or partition value cannot be encoded."""


class KeyCodec(Protocol):
    """Strategy mapping (prefix, entity id, partition) to object keys.

    ``owns`` tells whether a listed key has this codec's shape at all; keys of
    other resources sharing the prefix are not malformed, just not ours.
    """

    def encode(self, prefix: str, entity_id: str, partition: str) -> str: ...

    def decode(self, prefix: str, key: str) -> tuple[str, str]: ...

    def entity_prefix(self, prefix: str, entity_id: str) -> str: ...

    def owns(self, prefix: str, key: str) -> bool: ...


def join_prefix(prefix: str, local: str) -> str:
    prefix = prefix.strip(PATH_SEPARATOR)
    if not prefix:
        return local
    return f"{prefix}{PATH_SEPARATOR}{local}"


def list_prefix(prefix: str) -> str | None:
    """Listing prefix covering every object under ``prefix``."""
    prefix = prefix.strip(PATH_SEPARATOR)
    if not prefix:
        return None
    return prefix + PATH_SEPARATOR


def in_scope(prefix: str, key: str) -> bool:
    scope = list_prefix(prefix)
    return scope is None or key.startswith(scope)


def local_name(prefix: str, key: str) -> str:
    """Return ``key`` with the bucket prefix and its separator stripped."""
    scope = list_prefix(prefix)
    if scope and key.startswith(scope):
        return key[len(scope) :]
    return key


def is_reserved_key(
    local: str, reserved_prefix: str = DEFAULT_RESERVED_PREFIX
) -> bool:
    """Placeholder and operational keys never carry an entity."""
    if not local or local == ".":
        return True
    if local.endswith(PATH_SEPARATOR):
        return True
    return bool(reserved_prefix) and local.startswith(reserved_prefix)


def check_unreserved_id(
    entity_id: str, reserved_prefix: str = DEFAULT_RESERVED_PREFIX
) -> None:
    """Reject ids whose keys listing would skip as reserved."""
    if entity_id and is_reserved_key(entity_id, reserved_prefix):
        raise InvalidKeyPartError(
            f"entity id {entity_id!r} is reserved (prefix {reserved_prefix!r})"
        )


def _check_entity_id(entity_id: str) -> None:
    if not entity_id:
        raise InvalidKeyPartError("entity id must not be empty")
    if PATH_SEPARATOR in entity_id:
        raise InvalidKeyPartError(
            f"entity id must not contain {PATH_SEPARATOR!r}: {entity_id!r}"
        )


class DatedKeyCodec:
    """``<prefix>/<entity id>_<partition>.json`` keys for dated content."""

    def __init__(self, *, separator: str = "_", suffix: str = ".json") -> None:
        if not separator or PATH_SEPARATOR in separator:
            raise ValueError("separator must be a non-empty, non-path string")
        self.separator = separator
        self.suffix = suffix

    def encode(self, prefix: str, entity_id: str, partition: str) -> str:
        _check_entity_id(entity_id)
        if entity_id.endswith(self.separator):
            raise InvalidKeyPartError(
                f"entity id must not end with {self.separator!r}: {entity_id!r}"
            )
        if PATH_SEPARATOR in partition or self.separator in partition:
            raise InvalidKeyPartError(
                f"partition value must not contain {PATH_SEPARATOR!r} or "
                f"{self.separator!r}: {partition!r}"
            )
        return join_prefix(
            prefix, f"{entity_id}{self.separator}{partition}{self.suffix}"
        )

    def decode(self, prefix: str, key: str) -> tuple[str, str]:
        local = local_name(prefix, key)
        if self.suffix and local.endswith(self.suffix):
            local = local[: -len(self.suffix)]
        parts = local.rsplit(self.separator, 1)
        if len(parts) < 2 or not parts[0]:
            raise MalformedKeyError(key, f"missing {self.separator!r} separator")
        return parts[0], parts[1]

    def owns(self, prefix: str, key: str) -> bool:
        if not in_scope(prefix, key):
            return False
        local = local_name(prefix, key)
        if PATH_SEPARATOR in local:
            return False
        return not self.suffix or local.endswith(self.suffix)

    def entity_prefix(self, prefix: str, entity_id: str) -> str:
        _check_entity_id(entity_id)
        return join_prefix(prefix, entity_id)


class FlatKeyCodec:
    """``<prefix>/<entity id>`` keys for resources without a partition."""

    def encode(self, prefix: str, entity_id: str, partition: str) -> str:
        _check_entity_id(entity_id)
        if partition:
            raise InvalidKeyPartError(
                f"partition values are not supported for flat keys: {partition!r}"
            )
        return join_prefix(prefix, entity_id)

    def decode(self, prefix: str, key: str) -> tuple[str, str]:
        local = local_name(prefix, key)
        if not local or PATH_SEPARATOR in local:
            raise MalformedKeyError(key, "not a flat entity key")
        return local, ""

    def owns(self, prefix: str, key: str) -> bool:
        if not in_scope(prefix, key):
            return False
        local = local_name(prefix, key)
        return bool(local) and PATH_SEPARATOR not in local

    def entity_prefix(self, prefix: str, entity_id: str) -> str:
        _check_entity_id(entity_id)
        return join_prefix(prefix, entity_id)


def ensure_entity_first(
    codec: KeyCodec, *, prefix: str = "sample", partition: str = "2000-01-01"
) -> KeyCodec:
    """Reject codecs whose keys do not start with the entity's list prefix."""
    entity_id = "00000000-0000-0000-0000-000000000000"
    try:
        key = codec.encode(prefix, entity_id, partition)
    except InvalidKeyPartError:
        key = codec.encode(prefix, entity_id, "")
    scope = codec.entity_prefix(prefix, entity_id)
    if not key.startswith(scope):
        raise ValueError(
            f"{type(codec).__name__} does not place the entity id first: "
            f"{key!r} is outside {scope!r}"
        )
    if codec.decode(prefix, key)[0] != entity_id:
        raise ValueError(f"{type(codec).__name__} does not round-trip entity ids")
    return codec
