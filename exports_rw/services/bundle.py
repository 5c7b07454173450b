from __future__ import annotations

from dataclasses import dataclass, field

from exports_rw.common.config import Settings
from exports_rw.domain.keys import DatedKeyCodec, FlatKeyCodec
from exports_rw.infra.storage.client import ObjectStore
from exports_rw.infra.storage.memory import InMemoryObjectStore
from exports_rw.infra.storage.s3_client import S3ObjectStore

from .base import ServiceError, StoreScope
from .exporter import BulkExporter
from .lister import BulkLister
from .locator import EntityLocator
from .reader import EntityReader
from .writer import EntityLocks, VersionedWriter

CONTENT = "content"
CONCEPT = "concept"
GENERIC = "generic"


class StorageBackendNotConfiguredError(ServiceError):
    """Raised when the storage backend is not properly configured."""


class UnknownResourceError(ServiceError):
    """Raised when a service is requested for an unregistered resource."""


def build_object_store(settings: Settings) -> ObjectStore:
    """Build the storage backend selected by configuration."""
    backend = settings.STORAGE_BACKEND
    if backend == "memory":
        return InMemoryObjectStore()
    if backend != "s3":
        raise StorageBackendNotConfiguredError(
            f"Unsupported storage backend: {backend}."
        )
    if not settings.S3_BUCKET:
        raise StorageBackendNotConfiguredError("S3_BUCKET is required")
    return S3ObjectStore(settings=settings)


@dataclass(frozen=True, slots=True)
class Resource:
    """A kind of stored entity exposed under its own URL path."""

    name: str
    path: str
    scope: StoreScope
    dated: bool


def build_resources(settings: Settings, store: ObjectStore) -> dict[str, Resource]:
    reserved = settings.RESERVED_KEY_PREFIX
    return {
        CONTENT: Resource(
            name=CONTENT,
            path=settings.CONTENT_RESOURCE_PATH.strip("/"),
            scope=StoreScope(
                store=store,
                prefix=settings.BUCKET_CONTENT_PREFIX,
                codec=DatedKeyCodec(),
                reserved_prefix=reserved,
            ),
            dated=True,
        ),
        CONCEPT: Resource(
            name=CONCEPT,
            path=settings.CONCEPT_RESOURCE_PATH.strip("/"),
            scope=StoreScope(
                store=store,
                prefix=settings.BUCKET_CONCEPT_PREFIX,
                codec=FlatKeyCodec(),
                reserved_prefix=reserved,
            ),
            dated=False,
        ),
        GENERIC: Resource(
            name=GENERIC,
            path=settings.GENERIC_RESOURCE_PATH.strip("/"),
            scope=StoreScope(
                store=store,
                codec=FlatKeyCodec(),
                reserved_prefix=reserved,
            ),
            dated=False,
        ),
    }


@dataclass(frozen=True, slots=True)
class ResourceServices:
    """The services operating on one resource."""

    resource: Resource
    locator: EntityLocator
    writer: VersionedWriter
    reader: EntityReader
    lister: BulkLister
    exporter: BulkExporter


def _build_services(settings: Settings, resource: Resource) -> ResourceServices:
    scope = resource.scope
    locator = EntityLocator(scope)
    lister = BulkLister(scope)
    locks = EntityLocks() if settings.WRITER_ENTITY_LOCKS else None
    return ResourceServices(
        resource=resource,
        locator=locator,
        writer=VersionedWriter(scope, locator=locator, locks=locks),
        reader=EntityReader(scope, locator=locator),
        lister=lister,
        exporter=BulkExporter(scope, workers=settings.EXPORT_WORKERS, lister=lister),
    )


@dataclass
class ServiceBundle:
    """Constructs the services of every resource sharing one store.

    Built once per application; services hold no per-request state.
    """

    settings: Settings
    store: ObjectStore
    _services: dict[str, ResourceServices] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._services = {
            name: _build_services(self.settings, resource)
            for name, resource in build_resources(self.settings, self.store).items()
        }

    @property
    def resources(self) -> list[Resource]:
        return [services.resource for services in self._services.values()]

    def for_resource(self, name: str) -> ResourceServices:
        try:
            return self._services[name]
        except KeyError as exc:
            raise UnknownResourceError(f"Unknown resource: {name}") from exc

    def content(self) -> ResourceServices:
        return self.for_resource(CONTENT)

    def concept(self) -> ResourceServices:
        return self.for_resource(CONCEPT)

    def generic(self) -> ResourceServices:
        return self.for_resource(GENERIC)


def get_service_bundle(
    settings: Settings, store: ObjectStore | None = None
) -> ServiceBundle:
    return ServiceBundle(settings=settings, store=store or build_object_store(settings))
