"""
Canonical record types produced by the normalizer.

Every kind shares a small set of optional common fields used by the filter
evaluator and deduplicator; each subclass adds the fields that kind carries.
A field a source did not provide stays None; there are no sentinel defaults.
"""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Tuple

from ingestion.base_adapter import ResourceKind


@dataclass
class CanonicalRecord:
    """Common shape of a normalized resource."""
    kind: ClassVar[ResourceKind]

    source_id: Optional[str] = None
    identifier: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    container_name: Optional[str] = None
    container_id: Optional[str] = None
    href: Optional[str] = None
    timestamp: Optional[datetime] = None

    def natural_key(self) -> Tuple[Any, ...]:
        """Kind-specific natural key; the name unless a subclass says otherwise."""
        return (self.name,)

    def container_values(self) -> Tuple[Optional[str], ...]:
        """Values a container predicate is matched against."""
        return (self.container_name, self.container_id)

    def identity_key(self, scope_by_container: bool = False) -> Tuple[Any, ...]:
        """
        Key used for deduplication.

        Args:
            scope_by_container: Prefix the natural key with the container so
                same-named entities in different containers stay distinct

        Returns:
            Hashable tuple
        """
        key = self.natural_key()
        if scope_by_container:
            return (self.container_name or self.container_id,) + key
        return key

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data


@dataclass
class VirtualMachineRecord(CanonicalRecord):
    """container_* is the owning vApp; container_id is the parent identifier."""
    kind: ClassVar[ResourceKind] = ResourceKind.VIRTUAL_MACHINE

    cpu_count: Optional[int] = None
    memory_mb: Optional[int] = None
    vdc_name: Optional[str] = None
    guest_os: Optional[str] = None

    @property
    def parent_identifier(self) -> Optional[str]:
        return self.container_id

    def container_values(self) -> Tuple[Optional[str], ...]:
        # A VM sits in a vApp inside a VDC; either one scopes it
        return (self.container_name, self.container_id, self.vdc_name)


@dataclass
class TaskRecord(CanonicalRecord):
    """timestamp is the task start; container_* is the VDC."""
    kind: ClassVar[ResourceKind] = ResourceKind.TASK

    operation: Optional[str] = None
    owner_name: Optional[str] = None
    object_name: Optional[str] = None
    end_date: Optional[datetime] = None
    details: Optional[str] = None

    def natural_key(self) -> Tuple[Any, ...]:
        # CloudAPI reports urn:vcloud:task:<uuid>, the query service .../task/<uuid>
        identifier = self.identifier or ""
        return (identifier.rsplit(":", 1)[-1],)


@dataclass
class EventRecord(CanonicalRecord):
    """name is the entity the event concerns; timestamp is when it happened."""
    kind: ClassVar[ResourceKind] = ResourceKind.EVENT

    event_type: Optional[str] = None
    user_name: Optional[str] = None
    description: Optional[str] = None
    details: Optional[str] = None
    entity_name: Optional[str] = None

    def natural_key(self) -> Tuple[Any, ...]:
        return (self.event_type, self.timestamp, self.entity_name)


@dataclass
class StorageProfileRecord(CanonicalRecord):
    kind: ClassVar[ResourceKind] = ResourceKind.STORAGE_PROFILE

    enabled: Optional[bool] = None
    is_default: Optional[bool] = None
    storage_used_mb: Optional[int] = None
    storage_limit_mb: Optional[int] = None


@dataclass
class CatalogRecord(CanonicalRecord):
    """container_name is the owning organization."""
    kind: ClassVar[ResourceKind] = ResourceKind.CATALOG

    description: Optional[str] = None
    is_published: Optional[bool] = None
    is_shared: Optional[bool] = None
    template_count: Optional[int] = None
    media_count: Optional[int] = None


@dataclass
class VAppRecord(CanonicalRecord):
    kind: ClassVar[ResourceKind] = ResourceKind.VAPP

    vm_count: Optional[int] = None
    cpu_count: Optional[int] = None
    memory_mb: Optional[int] = None
    description: Optional[str] = None


@dataclass
class CatalogItemRecord(CanonicalRecord):
    """container_* is the catalog the item belongs to."""
    kind: ClassVar[ResourceKind] = ResourceKind.CATALOG_ITEM

    entity_name: Optional[str] = None
    entity_type: Optional[str] = None
    owner_name: Optional[str] = None


@dataclass
class EdgeGatewayRecord(CanonicalRecord):
    kind: ClassVar[ResourceKind] = ResourceKind.EDGE_GATEWAY

    gateway_type: Optional[str] = None
    description: Optional[str] = None


RECORD_TYPES: Dict[ResourceKind, type] = {
    record_type.kind: record_type
    for record_type in (
        VirtualMachineRecord,
        TaskRecord,
        EventRecord,
        StorageProfileRecord,
        CatalogRecord,
        VAppRecord,
        CatalogItemRecord,
        EdgeGatewayRecord,
    )
}
