"""
Configuration Loader (``marketplace_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``marketplace_config.schema`` types.  Runtime callers go through
``marketplace_config.get_active_config()`` instead of calling this
directly.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel
services or models.

Invariants enforced
-------------------
* Unknown top-level sections are rejected; a typo never silently falls
  back to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  source document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from marketplace_config.schema import (
    DatabaseConfig,
    ExecutionDefaults,
    LoggingConfig,
    MarketplaceConfig,
    NegotiationConfig,
    OfferDefaults,
)

_SECTIONS = frozenset(
    {"name", "version", "description", "negotiation", "offers", "execution", "database", "logging"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_decimal(value: Any, key: str) -> Decimal:
    """Parse a decimal setting; YAML floats go through ``str`` first."""
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a decimal, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: expected a decimal, got {value!r}") from exc


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{key}: expected a mapping, got {type(section).__name__}")
    return section


def _int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    return value


def parse_marketplace_config(data: dict[str, Any], default_name: str) -> MarketplaceConfig:
    """Build a ``MarketplaceConfig`` from a parsed YAML document."""
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    negotiation = _section(data, "negotiation")
    offers = _section(data, "offers")
    execution = _section(data, "execution")
    database = _section(data, "database")
    logging_section = _section(data, "logging")

    defaults = DatabaseConfig()
    return MarketplaceConfig(
        name=str(data.get("name", default_name)),
        version=_int(data, "version", 1),
        description=str(data.get("description", "")),
        negotiation=NegotiationConfig(
            max_rate_variance=parse_decimal(
                negotiation.get("max_rate_variance", "0.15"),
                "negotiation.max_rate_variance",
            ),
        ),
        offers=OfferDefaults(
            default_max_applicants=_int(offers, "default_max_applicants", 1),
            default_urgency=str(offers.get("default_urgency", "routine")).lower(),
            default_payment_structure=str(
                offers.get("default_payment_structure", "fixed")
            ).lower(),
        ),
        execution=ExecutionDefaults(
            default_issue_severity=str(
                execution.get("default_issue_severity", "medium")
            ).lower(),
        ),
        database=DatabaseConfig(
            url=str(database.get("url", defaults.url)),
            pool_size=_int(database, "pool_size", defaults.pool_size),
            max_overflow=_int(database, "max_overflow", defaults.max_overflow),
            echo=bool(database.get("echo", defaults.echo)),
        ),
        logging=LoggingConfig(
            level=str(logging_section.get("level", "INFO")).upper(),
        ),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> MarketplaceConfig:
    """Load and parse one configuration set file."""
    return parse_marketplace_config(load_yaml_file(path), default_name=path.stem)
