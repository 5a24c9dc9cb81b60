#!/usr/bin/env python3
"""
Create (or recreate) the approval tables from the active settings.

Reads approval_config/settings/default.yaml unless --settings is given.
DATABASE_URL in the environment overrides the file; --db-url overrides both.

Usage:
  python3 scripts/init_db.py [--settings PATH] [--db-url URL] [--drop]

Prerequisites:
  - PostgreSQL running and the target database exists (or use a sqlite URL).
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the approval engine schema")
    p.add_argument("--settings", default=None, help="Settings YAML file")
    p.add_argument("--db-url", default=None, help="Database URL (overrides settings)")
    p.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing approval tables before creating them",
    )
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from approval_config import get_active_settings
    from approval_kernel.db.engine import (
        create_engine_from_settings,
        create_tables,
        drop_tables,
    )
    from approval_kernel.logging_config import configure_logging

    overrides = {}
    if args.db_url:
        overrides["database_url"] = args.db_url
    try:
        settings = get_active_settings(args.settings, **overrides)
    except (FileNotFoundError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level)
    engine = create_engine_from_settings(settings)
    try:
        if args.drop:
            print("  Dropping approval tables...")
            drop_tables(engine)
        print("  Creating approval tables...")
        create_tables(engine)
    finally:
        engine.dispose()

    print(f"  Schema ready ({engine.url.render_as_string(hide_password=True)})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
