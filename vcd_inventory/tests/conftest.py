"""
Shared pytest fixtures for inventory aggregator tests.

This module provides fake collaborators so no test touches the network:
- FakeClient: stands in for HttpClient, serving canned CloudAPI JSON pages
  and query-service XML pages
- FakeAdapter: a SourceAdapter returning preset raw records or failing
"""
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import quoteattr

import pytest
import requests

from ingestion.base_adapter import (
    RawRecord,
    RecordEncoding,
    ResourceFilter,
    ResourceKind,
    SourceAdapter,
)

VCLOUD_NS = "http://www.vmware.com/vcloud/v1.5"


def http_error(status_code: int) -> requests.HTTPError:
    """Build the HTTPError requests raises for a given status."""
    response = requests.Response()
    response.status_code = status_code
    response.url = "https://vcd.example.com/api/query"
    return requests.HTTPError(f"{status_code} Client Error", response=response)


def query_xml(
    element: str,
    records: List[Dict[str, str]],
    total: Optional[int] = None,
    page: int = 1,
    page_size: int = 128,
) -> str:
    """Render a namespaced QueryResultRecords document."""
    total = len(records) if total is None else total
    rows = []
    for attributes in records:
        rendered = " ".join(f"{key}={quoteattr(value)}" for key, value in attributes.items())
        rows.append(f"    <{element} {rendered}/>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<QueryResultRecords xmlns="{VCLOUD_NS}" total="{total}" page="{page}" '
        f'pageSize="{page_size}" name="{element}">\n'
        f'    <Link rel="alternate" href="https://vcd.example.com/api/query"/>\n'
        + "\n".join(rows)
        + "\n</QueryResultRecords>"
    )


class FakeClient:
    """
    Canned responses keyed by CloudAPI path or query type.

    Each key maps to a list of pages; page N of a request is served from
    index N-1. Unknown keys answer with an empty, valid response.
    """

    def __init__(
        self,
        json_pages: Optional[Dict[str, List[Any]]] = None,
        xml_pages: Optional[Dict[str, List[str]]] = None,
        errors: Optional[Dict[str, Exception]] = None,
    ):
        self.json_pages = json_pages or {}
        self.xml_pages = xml_pages or {}
        self.errors = errors or {}
        self.calls: List[tuple] = []
        self.cache_clears = 0

    def clear_cache(self) -> None:
        self.cache_clears += 1

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = dict(params or {})
        self.calls.append(("json", path, params))
        if path in self.errors:
            raise self.errors[path]
        pages = self.json_pages.get(path)
        if not pages:
            return {"resultTotal": 0, "pageCount": 0, "page": 1, "values": []}
        return pages[params.get("page", 1) - 1]

    def get_text(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        params = dict(params or {})
        self.calls.append(("xml", path, params))
        query_type = params.get("type")
        if query_type in self.errors:
            raise self.errors[query_type]
        pages = self.xml_pages.get(query_type)
        if not pages:
            return query_xml("Record", [])
        return pages[params.get("page", 1) - 1]


class FakeAdapter(SourceAdapter):
    """Source adapter serving preset payloads, or raising a preset error."""

    supported_kinds = frozenset(ResourceKind)

    def __init__(
        self,
        source_id: str,
        payloads: Optional[List[Dict[str, Any]]] = None,
        encoding: RecordEncoding = RecordEncoding.STRUCTURED,
        error: Optional[BaseException] = None,
        kinds: Optional[List[ResourceKind]] = None,
    ):
        super().__init__(source_id, client=None, config={"description": f"{source_id} query"})
        self.payloads = payloads or []
        self.encoding = encoding
        self.error = error
        self.calls: List[tuple] = []
        if kinds is not None:
            self.kinds = frozenset(kinds)

    def _query(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[RawRecord]:
        self.calls.append((kind, resource_filter))
        if self.error is not None:
            raise self.error
        return [RawRecord(self.source_id, self.encoding, dict(payload)) for payload in self.payloads]


@pytest.fixture
def legacy_vm_source():
    """
    Attribute-encoded VM source, as the query service reports it.

    Returns:
        FakeAdapter with one VM whose values are all text
    """
    return FakeAdapter(
        "legacy",
        payloads=[{"name": "web-01", "status": "POWERED_ON", "numberOfCpus": "2"}],
        encoding=RecordEncoding.ATTRIBUTES,
    )


@pytest.fixture
def structured_vm_source():
    """
    Structured VM source, as CloudAPI reports it.

    Returns:
        FakeAdapter with two native-typed VMs, one overlapping the legacy source
    """
    return FakeAdapter(
        "cloudapi",
        payloads=[
            {"name": "web-01", "status": "POWERED_ON", "cpuCount": 2, "memoryMB": 4096},
            {"name": "db-01", "status": "POWERED_OFF"},
        ],
        encoding=RecordEncoding.STRUCTURED,
    )


@pytest.fixture
def cloudapi_vm_page():
    """One CloudAPI /vms page with nested vApp and VDC references."""
    return {
        "resultTotal": 2,
        "pageCount": 1,
        "page": 1,
        "pageSize": 128,
        "values": [
            {
                "id": "urn:vcloud:vm:1111",
                "name": "web-01",
                "status": "POWERED_ON",
                "cpuCount": 2,
                "memoryMB": 4096,
                "vapp": {"id": "urn:vcloud:vapp:aaaa", "name": "web-vapp"},
                "vdc": {"id": "urn:vcloud:vdc:0001", "name": "prod-vdc"},
            },
            {
                "id": "urn:vcloud:vm:2222",
                "name": "db-01",
                "status": "POWERED_OFF",
                "cpuCount": 4,
                "memoryMB": 16384,
                "vapp": {"id": "urn:vcloud:vapp:bbbb", "name": "db-vapp"},
            },
        ],
    }


@pytest.fixture
def legacy_vm_records():
    """VMRecord attribute bags from the typed query service."""
    return [
        {
            "name": "web-01",
            "status": "POWERED_ON",
            "numberOfCpus": "1",
            "memoryMB": "2048",
            "href": "https://vcd.example.com/api/vApp/vm-1111",
            "container": "https://vcd.example.com/api/vApp/vapp-aaaa",
            "containerName": "web-vapp",
            "vdcName": "prod-vdc",
        },
        {
            "name": "standalone-01",
            "status": "SUSPENDED",
            "numberOfCpus": "2",
            "memoryMB": "1024",
            "href": "https://vcd.example.com/api/vApp/vm-3333",
            "vdcName": "dev-vdc",
        },
    ]
