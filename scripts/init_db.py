#!/usr/bin/env python3
"""
Create the marketplace schema and optionally seed the service catalog.

The catalog is owned by an external system; for local runs a YAML file
with a top-level ``services:`` list can be loaded instead.  Each item
carries the Service columns (service_code, service_name, category,
complexity, estimated_duration_hours, ...).  Existing codes are skipped.

Usage:
  python3 scripts/init_db.py [--config default] [--db-url URL] [--drop]
                             [--catalog catalog.yaml]
"""

import argparse
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create marketplace tables")
    p.add_argument("--config", default="default", help="Configuration set name")
    p.add_argument("--db-url", default=None, help="Override the configured database URL")
    p.add_argument("--drop", action="store_true", help="Drop all tables first")
    p.add_argument("--catalog", type=Path, default=None, help="YAML service catalog to load")
    return p.parse_args()


def _seed_catalog(session, path: Path) -> int:
    import yaml
    from sqlalchemy import select

    from marketplace_kernel.domain.values import ServiceCategory, ServiceComplexity
    from marketplace_kernel.models import Service

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    added = 0
    for item in data.get("services", []):
        code = item["service_code"]
        exists = session.execute(
            select(Service.id).where(Service.service_code == code)
        ).first()
        if exists is not None:
            continue
        session.add(
            Service(
                service_code=code,
                service_name=item["service_name"],
                description=item.get("description"),
                category=ServiceCategory(item["category"]),
                complexity=ServiceComplexity(item.get("complexity", "basic")),
                estimated_duration_hours=Decimal(str(item["estimated_duration_hours"])),
                required_skills=list(item.get("required_skills", [])),
                required_certifications=list(item.get("required_certifications", [])),
                suggested_base_rate=(
                    Decimal(str(item["suggested_base_rate"]))
                    if item.get("suggested_base_rate") is not None
                    else None
                ),
                is_active=bool(item.get("is_active", True)),
                created_by="init_db",
            )
        )
        added += 1
    return added


def main() -> int:
    args = _parse_args()

    from marketplace_config import get_active_config
    from marketplace_config.bridges import engine_options
    from marketplace_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from marketplace_kernel.logging_config import configure_logging

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)
    init_engine_from_url(**engine_options(config, args.db_url))

    if args.drop:
        drop_tables()
    create_tables()
    print("  Tables created.")

    if args.catalog is not None:
        with session_scope() as session:
            added = _seed_catalog(session, args.catalog)
        print(f"  Catalog: {added} service(s) added from {args.catalog}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
