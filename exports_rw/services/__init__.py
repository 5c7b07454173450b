from .base import (
    EntityNotFoundError,
    PartialFailureError,
    RenameCleanupError,
    ServiceError,
    StoreScope,
)
from .bundle import (
    Resource,
    ResourceServices,
    ServiceBundle,
    StorageBackendNotConfiguredError,
    build_object_store,
    get_service_bundle,
)
from .exporter import BulkExporter, ExportStream
from .lister import BulkLister
from .locator import EntityLocator, Location
from .reader import EntityReader
from .writer import EntityLocks, VersionedWriter, WriteOutcome

__all__ = [
    "BulkExporter",
    "BulkLister",
    "EntityLocator",
    "EntityLocks",
    "EntityNotFoundError",
    "EntityReader",
    "ExportStream",
    "Location",
    "PartialFailureError",
    "RenameCleanupError",
    "Resource",
    "ResourceServices",
    "ServiceBundle",
    "ServiceError",
    "StorageBackendNotConfiguredError",
    "StoreScope",
    "VersionedWriter",
    "WriteOutcome",
    "build_object_store",
    "get_service_bundle",
]
