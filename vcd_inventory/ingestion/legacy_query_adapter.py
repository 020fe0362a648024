"""
Legacy typed query service adapter (/api/query?type=...).

The query service answers with XML where every value is a text attribute:

    <QueryResultRecords total="2" page="1" pageSize="128" ...>
        <Link rel="nextPage" .../>
        <VMRecord name="web-01" status="POWERED_ON" numberOfCpus="2"
                  href="https://vcd/api/vApp/vm-1a2b" containerName="web-vapp"/>
        ...
    </QueryResultRecords>

Each record element becomes an attribute bag (Dict[str, str]); nothing is
parsed here. The same class serves the tenant query types (vm, task, ...)
and the admin ones (adminVM, adminTask, ...), selected by ``flavor``.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple
from xml.etree.ElementTree import Element, ParseError  # For type hints and parse errors only

from defusedxml import ElementTree as ET

from .base_adapter import (
    RawRecord,
    RecordEncoding,
    ResourceFilter,
    ResourceKind,
    SourceAdapter,
)
from .cloudapi_adapter import fiql_safe, format_timestamp

logger = logging.getLogger(__name__)

TENANT = "tenant"
ADMIN = "admin"


@dataclass(frozen=True)
class QueryType:
    """How one resource kind is listed through the typed query service."""
    tenant: str
    admin: Optional[str] = None
    status_attr: Optional[str] = "status"
    since_attr: Optional[str] = None
    # Some query types reject or ignore filter expressions; filter after parsing instead
    pushdown: bool = True


QUERY_TYPES: Dict[ResourceKind, QueryType] = {
    ResourceKind.VIRTUAL_MACHINE: QueryType("vm", "adminVM"),
    ResourceKind.VAPP: QueryType("vApp", "adminVApp", since_attr="creationDate"),
    ResourceKind.TASK: QueryType("task", "adminTask", pushdown=False),
    ResourceKind.EVENT: QueryType("event", "adminEvent", status_attr=None, pushdown=False),
    ResourceKind.STORAGE_PROFILE: QueryType(
        "orgVdcStorageProfile", "adminOrgVdcStorageProfile", status_attr=None
    ),
    ResourceKind.CATALOG: QueryType("catalog", "adminCatalog", status_attr=None),
    ResourceKind.CATALOG_ITEM: QueryType(
        "catalogItem", "adminCatalogItem", status_attr="status", since_attr="creationDate"
    ),
    ResourceKind.EDGE_GATEWAY: QueryType("edgeGateway", None, status_attr=None),
}


class LegacyQueryAdapter(SourceAdapter):
    """Lists resources through the XML typed query service."""

    supported_kinds = frozenset(QUERY_TYPES)

    def __init__(self, source_id: str, client, config: Optional[Dict[str, Any]] = None):
        super().__init__(source_id, client, config)
        self.flavor = self.config.get("flavor", TENANT)
        if self.flavor not in (TENANT, ADMIN):
            raise ValueError(f"Unknown query flavor for {source_id}: {self.flavor}")
        if self.flavor == ADMIN:
            # Not every kind has an admin query type
            self.kinds = frozenset(k for k in self.kinds if QUERY_TYPES[k].admin)

    def query_type_for(self, kind: ResourceKind) -> str:
        query_type = QUERY_TYPES[kind]
        return query_type.admin if self.flavor == ADMIN else query_type.tenant

    def _query(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[RawRecord]:
        query_type = QUERY_TYPES[kind]
        params: Dict[str, Any] = {
            "type": self.query_type_for(kind),
            "format": "records",
            "pageSize": self.page_size,
        }

        expression = self.build_filter(query_type, resource_filter)
        if expression:
            params["filter"] = expression

        records: List[RawRecord] = []
        page = 1

        while True:
            body = self.client.get_text("/api/query", params={**params, "page": page})
            root = parse_query_result(body)

            page_records = [
                RawRecord(self.source_id, RecordEncoding.ATTRIBUTES, attributes)
                for attributes in iter_record_attributes(root)
            ]
            records.extend(page_records)

            total, page_size = _paging(root, self.page_size)
            if not page_records or total is None or page * page_size >= total:
                break
            if page >= self.max_pages:
                logger.warning(
                    "%s: stopping after %d pages (%d records available)",
                    self.description, page, total,
                )
                break
            page += 1

        logger.debug("%s: %d %s records", self.description, len(records), kind.value)
        return records

    @staticmethod
    def build_filter(query_type: QueryType, resource_filter: ResourceFilter) -> Optional[str]:
        """Translate the pushable part of a filter into a query-service filter expression."""
        if not query_type.pushdown:
            return None

        predicates = []
        if resource_filter.name and fiql_safe(resource_filter.name):
            predicates.append(f"name==*{resource_filter.name}*")
        if resource_filter.status and query_type.status_attr and fiql_safe(resource_filter.status):
            predicates.append(f"{query_type.status_attr}=={resource_filter.status}")
        if resource_filter.since and query_type.since_attr:
            predicates.append(f"{query_type.since_attr}=ge={format_timestamp(resource_filter.since)}")

        return ";".join(predicates) if predicates else None


def parse_query_result(body: str) -> Element:
    """Parse a QueryResultRecords document, raising ValueError on anything else."""
    if not body or not body.strip():
        raise ValueError("Empty query service response")

    try:
        root = ET.fromstring(body)
    except ParseError as exc:
        raise ValueError(f"Malformed query service XML: {exc}") from exc

    if _local_name(root.tag) != "QueryResultRecords":
        raise ValueError(f"Unexpected query service root element: {_local_name(root.tag)}")

    return root


def iter_record_attributes(root: Element) -> Iterator[Dict[str, str]]:
    """Yield the attribute bag of every *Record child element."""
    for child in root:
        if _local_name(child.tag).endswith("Record"):
            yield {_local_name(key): value for key, value in child.attrib.items()}


def _paging(root: Element, default_page_size: int) -> Tuple[Optional[int], int]:
    try:
        total = int(root.attrib["total"])
    except (KeyError, ValueError):
        total = None
    try:
        page_size = int(root.attrib.get("pageSize", default_page_size))
    except ValueError:
        page_size = default_page_size
    return total, max(1, page_size)


def _local_name(tag: str) -> str:
    """Strip an XML namespace: '{http://www.vmware.com/vcloud/v1.5}VMRecord' -> 'VMRecord'."""
    return tag.rsplit("}", 1)[-1]
