#!/usr/bin/env python3
"""
Command-line entry point for the vCD inventory aggregator.

Answers "what are all the X" for one resource kind by querying every
configured vCD source, then prints a Markdown diagnostic report (or JSON).

The service is:
- Tolerant: a failing source is reported, not fatal
- Observable: per-source outcomes and stage metrics on every run
- Deterministic: same inputs and backend state give the same records

Usage:
    python run_inventory.py vm [--config config.yaml] [--name web] [--status POWERED_ON]
    python run_inventory.py task --hours 24 --container urn:vcloud:vdc:...
"""
import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from aggregation import Aggregator, AggregationResult, Deduplicator, NoSourcesAvailable, build_sources
from ingestion import HttpClient, ResourceFilter, ResourceKind
from normalization import RecordNormalizer
from observability import AggregationReporter

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ConfigError(ValueError):
    """Raised when the YAML configuration is missing or incomplete."""


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load and validate the YAML configuration.

    Raises:
        ConfigError: If the file is missing or a required section is absent
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    for key in ("vcd", "sources"):
        if key not in config:
            raise ConfigError(f"Missing required config key: {key}")

    if not config["vcd"].get("base_url"):
        raise ConfigError("Missing required config key: vcd.base_url")

    return config


class InventoryService:
    """
    Wires configuration, the authenticated client, and the aggregator.

    Authentication itself happens elsewhere: the bearer token is read from
    the environment variable named by vcd.token_env.
    """

    def __init__(self, config: Dict[str, Any], client: Optional[HttpClient] = None):
        """
        Initialize the service.

        Args:
            config: Parsed configuration (see load_config)
            client: Pre-built client; built from config["vcd"] when omitted
        """
        self.config = config
        vcd_config = config["vcd"]
        aggregation_config = config.get("aggregation") or {}

        if client is None:
            token_env = vcd_config.get("token_env", "VCD_TOKEN")
            token = os.getenv(token_env)
            if not token:
                logger.warning(f"{token_env} is not set; requests will be unauthenticated")
            client = HttpClient.from_config(vcd_config, auth_token=token)

        self.client = client
        self.adapters = build_sources(client, config.get("sources"))
        self.aggregator = Aggregator(
            self.adapters,
            normalizer=RecordNormalizer(
                strict=bool(aggregation_config.get("strict_normalization", True)),
                validation_sample_limit=int(aggregation_config.get("validation_sample_limit", 3)),
            ),
            deduplicator=Deduplicator(
                scope_by_container=bool(aggregation_config.get("scope_by_container", False))
            ),
            require_success=bool(aggregation_config.get("require_success", False)),
            max_workers=int(aggregation_config.get("max_workers", 1)),
        )

        logger.info(
            f"Inventory service initialized for {vcd_config['base_url']} "
            f"with sources: {', '.join(a.source_id for a in self.adapters)}"
        )

    @classmethod
    def from_file(cls, config_path: str) -> "InventoryService":
        return cls(load_config(config_path))

    def run(
        self,
        kind: ResourceKind,
        resource_filter: Optional[ResourceFilter] = None,
        priority_order: Optional[List[str]] = None,
        require_success: Optional[bool] = None,
    ) -> AggregationResult:
        """
        Aggregate one resource kind; see Aggregator.aggregate.

        The client's response cache only lives for one call, so a long-lived
        service never answers from a previous call's responses.
        """
        self.client.clear_cache()
        return self.aggregator.aggregate(
            kind,
            resource_filter=resource_filter,
            priority_order=priority_order,
            require_success=require_success,
        )


def build_filter(args: argparse.Namespace) -> ResourceFilter:
    """Translate CLI options into a ResourceFilter."""
    options = {
        "name": args.name,
        "container": args.container,
        "status": args.status,
    }
    if args.hours is not None:
        return ResourceFilter.lookback(args.hours, **options)
    return ResourceFilter(**options)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="List vCD resources across every query interface"
    )
    parser.add_argument(
        "kind",
        help="Resource kind: " + ", ".join(kind.value for kind in ResourceKind),
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    parser.add_argument("--name", help="Case-insensitive name substring")
    parser.add_argument("--container", help="Container (vApp, VDC, catalog, org) name or id substring")
    parser.add_argument("--status", help="Exact status value, e.g. POWERED_ON")
    parser.add_argument("--hours", type=float, help="Only records from the last N hours")
    parser.add_argument(
        "--priority",
        help="Comma-separated source ids, highest priority first (default: config order)"
    )
    parser.add_argument(
        "--require-success",
        action="store_true",
        default=None,
        help="Exit with an error if no source answers"
    )
    parser.add_argument("--json", action="store_true", help="Print JSON instead of Markdown")
    parser.add_argument("--report-dir", help="Also save the Markdown report to this directory")
    parser.add_argument("--max-rows", type=int, help="Truncate the records table")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        kind = ResourceKind.from_name(args.kind)
        service = InventoryService.from_file(args.config)
        priority = [s.strip() for s in args.priority.split(",") if s.strip()] if args.priority else None
        result = service.run(
            kind,
            resource_filter=build_filter(args),
            priority_order=priority,
            require_success=args.require_success,
        )

    except NoSourcesAvailable as e:
        logger.error(str(e))
        for outcome in e.outcomes:
            logger.error(f"  {outcome.summary()}")
        return 1

    except ValueError as e:
        # ConfigError and unknown resource kinds
        logger.error(f"Invalid invocation: {e}")
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        reporter = AggregationReporter(max_rows=args.max_rows)
        report = reporter.generate_report(result)
        print(report)
        if args.report_dir:
            path = reporter.save_report(report, Path(args.report_dir), kind)
            logger.info(f"Report: {path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
