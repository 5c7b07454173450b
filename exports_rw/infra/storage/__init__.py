"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends,
enabling support for S3, MinIO, other S3-compatible services and an
in-memory store.
"""

from .client import ObjectStore, StorageError, StoredObject
from .memory import InMemoryObjectStore

__all__ = [
    "InMemoryObjectStore",
    "ObjectStore",
    "StorageError",
    "StoredObject",
]
