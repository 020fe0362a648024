"""
Standing registry of source adapters.

Builds the adapter list from the ``sources`` section of the config. The
built-in sources, in default priority order:
- cloudapi:    CloudAPI structured lists (most complete fields)
- query:       typed query service, tenant query types
- admin_query: typed query service, admin query types

Extra sources can be declared with an explicit ``type`` (cloudapi | query).
"""
import logging
from typing import Any, Dict, List, Optional

from ingestion.base_adapter import SourceAdapter
from ingestion.cloudapi_adapter import CloudApiAdapter
from ingestion.http_client import HttpClient
from ingestion.legacy_query_adapter import ADMIN, TENANT, LegacyQueryAdapter

logger = logging.getLogger(__name__)

ADAPTER_TYPES = {
    "cloudapi": CloudApiAdapter,
    "query": LegacyQueryAdapter,
}

DEFAULT_SOURCES: Dict[str, Dict[str, Any]] = {
    "cloudapi": {"type": "cloudapi", "description": "CloudAPI"},
    "query": {"type": "query", "flavor": TENANT, "description": "Standard query"},
    "admin_query": {"type": "query", "flavor": ADMIN, "description": "Admin query"},
}


def build_sources(client: HttpClient, config: Optional[Dict[str, Any]] = None) -> List[SourceAdapter]:
    """
    Instantiate every enabled source, built-ins first.

    Args:
        client: Authenticated client shared by all adapters
        config: ``sources`` section; a missing entry keeps the built-in defaults

    Returns:
        Adapters in default priority order
    """
    config = config or {}
    names = list(DEFAULT_SOURCES) + [name for name in config if name not in DEFAULT_SOURCES]

    adapters: List[SourceAdapter] = []
    for name in names:
        source_config = {**DEFAULT_SOURCES.get(name, {}), **(config.get(name) or {})}
        if not source_config.get("enabled", True):
            logger.info(f"Source {name} disabled in config")
            continue

        adapter_type = source_config.get("type")
        if adapter_type not in ADAPTER_TYPES:
            raise ValueError(f"Source {name} has unknown type: {adapter_type!r}")

        adapters.append(ADAPTER_TYPES[adapter_type](name, client, source_config))

    return adapters
