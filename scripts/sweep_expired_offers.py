#!/usr/bin/env python3
"""
Flip every OPEN offer whose expires_at has passed to EXPIRED.

Lapsed offers are also expired lazily when touched (listing, applying);
this sweep keeps stored statuses current for offers nobody touches.
Safe to run repeatedly and concurrently with live traffic.

Usage:
  python3 scripts/sweep_expired_offers.py [--config default] [--db-url URL]

Exit code is 0 on success, 1 if the sweep was rejected.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Expire lapsed service offers")
    p.add_argument("--config", default="default", help="Configuration set name")
    p.add_argument("--db-url", default=None, help="Override the configured database URL")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from marketplace_config import get_active_config
    from marketplace_config.bridges import build_marketplace_policy, engine_options
    from marketplace_kernel.db.engine import get_session, init_engine_from_url
    from marketplace_kernel.domain.clock import SystemClock
    from marketplace_kernel.logging_config import configure_logging
    from marketplace_kernel.services import MarketplaceService

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)
    init_engine_from_url(**engine_options(config, args.db_url))

    session = get_session()
    try:
        marketplace = MarketplaceService(
            session,
            clock=SystemClock(),
            policy=build_marketplace_policy(config),
        )
        result = marketplace.sweep_expired_offers()
    finally:
        session.close()

    if not result.is_success:
        print(f"  Sweep rejected: {result.message}", file=sys.stderr)
        return 1
    print(f"  Expired {len(result.value)} offer(s).")
    for offer_id in result.value:
        print(f"    {offer_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
