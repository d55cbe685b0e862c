# =============================================================================
# scripts/create_document_tables.py
# Creates the document tables used by SupabaseDocumentStore
# =============================================================================
"""
Generates (and optionally checks) the Supabase tables that back the
workOrders, customers and users collections.

Option 1: Print SQL (copy to Supabase SQL Editor)
    python scripts/create_document_tables.py --sql-only

Option 2: Check which tables already exist
    python scripts/create_document_tables.py --check

Credentials come from the same settings as the app (config file, .env,
SUPABASE_URL / SUPABASE_KEY).
"""

import argparse
import sys

from hydraulics_core.config import load_settings
from hydraulics_core.errors import ConfigurationError, RemoteStoreError
from hydraulics_core.models import ENTITY_TYPES

TABLE_TEMPLATE = """
-- ----------------------------------------------------------------------------
-- {table}
-- ----------------------------------------------------------------------------
CREATE TABLE IF NOT EXISTS "{table}" (
    id TEXT PRIMARY KEY,
    data JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS "idx_{table}_updated_at" ON "{table}"(updated_at);

ALTER TABLE "{table}" ENABLE ROW LEVEL SECURITY;

CREATE POLICY "Authenticated access on {table}"
ON "{table}"
FOR ALL
TO authenticated
USING (true)
WITH CHECK (true);
"""


def build_sql(table_prefix: str = "") -> str:
    """DDL for every synchronized collection."""
    parts = [
        "-- ============================================================================",
        "-- WORK ORDER DOCUMENT TABLES",
        "-- One row per entity; the entity document lives in the data column",
        "-- ============================================================================",
    ]
    for collection in ENTITY_TYPES:
        parts.append(TABLE_TEMPLATE.format(table=f"{table_prefix}{collection}"))
    return "\n".join(parts)


def print_sql(table_prefix: str) -> None:
    """Print the SQL for manual execution in Supabase SQL Editor."""
    print("=" * 70)
    print(" SQL TO CREATE THE DOCUMENT TABLES")
    print(" Copy this SQL and run it in Supabase SQL Editor")
    print("=" * 70)
    print(build_sql(table_prefix))
    print("=" * 70)


def check_tables() -> int:
    """Report which collection tables are reachable. Returns a process exit code."""
    from hydraulics_core.data.supabase_client import (
        SupabaseDocumentStore,
        get_supabase_client,
    )

    try:
        settings = load_settings()
        store = SupabaseDocumentStore(
            get_supabase_client(settings.supabase),
            table_prefix=settings.supabase.table_prefix,
        )
    except ConfigurationError as e:
        print(f"ERROR: {e.message}")
        return 1

    missing = 0
    for collection in ENTITY_TYPES:
        table = store.table_name(collection)
        try:
            count = len(store.query(collection))
            print(f"  OK       {table} ({count} documents)")
        except RemoteStoreError as e:
            missing += 1
            print(f"  MISSING  {table}: {e.message}")

    if missing:
        print()
        print("Run with --sql-only and execute the output in the Supabase SQL Editor.")
    return 1 if missing else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Create work order document tables")
    parser.add_argument("--sql-only", action="store_true", help="Print SQL and exit")
    parser.add_argument("--check", action="store_true", help="Check existing tables")
    parser.add_argument("--prefix", default="", help="Table name prefix")
    args = parser.parse_args()

    if args.check:
        return check_tables()

    print_sql(args.prefix)
    return 0


if __name__ == "__main__":
    sys.exit(main())
