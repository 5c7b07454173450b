from .keys import (
    DatedKeyCodec,
    FlatKeyCodec,
    InvalidKeyPartError,
    KeyCodec,
    MalformedKeyError,
    check_unreserved_id,
    ensure_entity_first,
    in_scope,
    is_reserved_key,
    local_name,
)

__all__ = [
    "DatedKeyCodec",
    "FlatKeyCodec",
    "InvalidKeyPartError",
    "KeyCodec",
    "MalformedKeyError",
    "check_unreserved_id",
    "ensure_entity_first",
    "in_scope",
    "is_reserved_key",
    "local_name",
]
