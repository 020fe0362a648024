"""
Field mappings from both raw encodings onto the canonical record types.

A FieldSpec names where a canonical field lives in a structured (CloudAPI)
payload, as dotted key paths, and in an attribute (query service) payload,
as attribute names. Alternatives are tried in order; the first non-blank
value wins.
"""
from dataclasses import dataclass
from typing import Dict, Tuple, Union

from ingestion.base_adapter import ResourceKind

from .records import RECORD_TYPES

TEXT = "text"
INTEGER = "integer"
BOOLEAN = "boolean"
TIMESTAMP = "timestamp"
LOCATOR = "locator"

Paths = Union[str, Tuple[str, ...]]


@dataclass(frozen=True)
class FieldSpec:
    name: str
    structured: Tuple[str, ...] = ()
    attributes: Tuple[str, ...] = ()
    parser: str = TEXT


@dataclass(frozen=True)
class KindSchema:
    kind: ResourceKind
    fields: Tuple[FieldSpec, ...]
    required: Tuple[str, ...]

    @property
    def record_type(self) -> type:
        return RECORD_TYPES[self.kind]


def F(name: str, structured: Paths = (), attributes: Paths = (), parser: str = TEXT) -> FieldSpec:
    if isinstance(structured, str):
        structured = (structured,)
    if isinstance(attributes, str):
        attributes = (attributes,)
    return FieldSpec(name, tuple(structured), tuple(attributes), parser)


_COMMON = (
    F("identifier", "id", "id"),
    F("name", "name", "name"),
    F("href", "href", "href"),
)

SCHEMAS: Dict[ResourceKind, KindSchema] = {
    ResourceKind.VIRTUAL_MACHINE: KindSchema(
        ResourceKind.VIRTUAL_MACHINE,
        _COMMON + (
            F("status", "status", "status"),
            F("container_name", "vapp.name", "containerName"),
            F("container_id", "vapp.id", "container", parser=LOCATOR),
            F("cpu_count", ("cpuCount", "numberOfCpus"), ("numberOfCpus", "cpuCount"), INTEGER),
            F("memory_mb", ("memoryMB", "memory.sizeMb"), "memoryMB", INTEGER),
            F("vdc_name", "vdc.name", "vdcName"),
            F("guest_os", "guestOs", "guestOs"),
            F("timestamp", "creationDate", "dateCreated", TIMESTAMP),
        ),
        required=("name",),
    ),
    ResourceKind.TASK: KindSchema(
        ResourceKind.TASK,
        (
            F("identifier", "id", "id"),
            F("name", ("name", "operationName"), "name"),
            F("href", "href", "href"),
            F("status", "status", "status"),
            F("timestamp", "startDate", "startDate", TIMESTAMP),
            F("end_date", "endDate", "endDate", TIMESTAMP),
            F("operation", "operation", ("operation", "operationFull")),
            F("owner_name", "owner.name", "ownerName"),
            F("object_name", "object.name", "objectName"),
            F("details", "details", ("details", "message")),
            F("container_name", "orgVdc.name", "vdcName"),
            F("container_id", "orgVdc.id", "vdc", parser=LOCATOR),
        ),
        required=("identifier",),
    ),
    ResourceKind.EVENT: KindSchema(
        ResourceKind.EVENT,
        (
            F("identifier", "id", "eventId"),
            F("name", "entity.name", "entityName"),
            F("entity_name", "entity.name", "entityName"),
            F("href", "href", "href"),
            F("event_type", "eventType", "eventType"),
            F("status", "eventStatus", "eventStatus"),
            F("timestamp", "timestamp", "timeStamp", TIMESTAMP),
            F("user_name", "user.name", "userName"),
            F("description", "description", "description"),
            F("details", "details", "details"),
            F("container_name", "org.name", "orgName"),
        ),
        required=("event_type", "timestamp"),
    ),
    ResourceKind.STORAGE_PROFILE: KindSchema(
        ResourceKind.STORAGE_PROFILE,
        _COMMON + (
            F("container_name", "vdc.name", "vdcName"),
            F("container_id", "vdc.id", "vdc", parser=LOCATOR),
            F("enabled", "isEnabled", "isEnabled", BOOLEAN),
            F("is_default", "isDefault", "isDefaultStorageProfile", BOOLEAN),
            F("storage_used_mb", "storageUsedMB", "storageUsedMB", INTEGER),
            F("storage_limit_mb", "storageLimitMB", "storageLimitMB", INTEGER),
        ),
        required=("name",),
    ),
    ResourceKind.CATALOG: KindSchema(
        ResourceKind.CATALOG,
        _COMMON + (
            F("status", "status", "status"),
            F("description", "description", "description"),
            F("is_published", "isPublished", "isPublished", BOOLEAN),
            F("is_shared", "isShared", "isShared", BOOLEAN),
            F("template_count", "numberOfVAppTemplates", "numberOfVAppTemplates", INTEGER),
            F("media_count", "numberOfMedia", "numberOfMedia", INTEGER),
            F("container_name", "org.name", "orgName"),
            F("timestamp", "creationDate", "creationDate", TIMESTAMP),
        ),
        required=("name",),
    ),
    ResourceKind.VAPP: KindSchema(
        ResourceKind.VAPP,
        _COMMON + (
            F("status", "status", "status"),
            F("container_name", "vdc.name", "vdcName"),
            F("container_id", "vdc.id", "vdc", parser=LOCATOR),
            F("vm_count", "numberOfVMs", "numberOfVMs", INTEGER),
            F("cpu_count", "numberOfCpus", "numberOfCpus", INTEGER),
            F("memory_mb", "memoryAllocationMB", "memoryAllocationMB", INTEGER),
            F("timestamp", "creationDate", "creationDate", TIMESTAMP),
            F("description", "description", "description"),
        ),
        required=("name",),
    ),
    ResourceKind.CATALOG_ITEM: KindSchema(
        ResourceKind.CATALOG_ITEM,
        _COMMON + (
            F("status", "status", "status"),
            F("entity_name", "entity.name", "entityName"),
            F("entity_type", "entity.type", "entityType"),
            F("owner_name", "owner.name", "ownerName"),
            F("container_name", "catalog.name", "catalogName"),
            F("container_id", "catalog.id", "catalog", parser=LOCATOR),
            F("timestamp", "creationDate", "creationDate", TIMESTAMP),
        ),
        required=("name",),
    ),
    ResourceKind.EDGE_GATEWAY: KindSchema(
        ResourceKind.EDGE_GATEWAY,
        _COMMON + (
            F("status", "status", "gatewayStatus"),
            F("description", "description", "description"),
            F("gateway_type", "gatewayBacking.gatewayType", "gatewayType"),
            F("container_name", "orgVdc.name", "vdcName"),
            F("container_id", "orgVdc.id", "vdc", parser=LOCATOR),
        ),
        required=("name",),
    ),
}
