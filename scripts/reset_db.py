#!/usr/bin/env python3
"""Script to reset the ToolFix database.

Usage:
  python scripts/reset_db.py [--force] [--only sessions|results|users]
"""

import argparse
import os
import sys
from pathlib import Path

# Add project root to sys.path so we can import toolfix packages
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from toolfix.core.database import (
    Base,
    ChatSessionRow,
    InventoryItem,
    ProblemResult,
    Profile,
    get_engine,
    init_db,
)

TABLE_GROUPS = {
    "sessions": [ChatSessionRow.__table__],
    "results": [ProblemResult.__table__],
    "users": [Profile.__table__, InventoryItem.__table__],
}


def reset_tables(group: str | None, force: bool) -> None:
    """Drop and recreate the selected tables (all when group is None)."""
    tables = TABLE_GROUPS[group] if group else list(Base.metadata.sorted_tables)
    names = ", ".join(t.name for t in tables)
    print(f"🧰 Resetting tables: {names}")

    if not force:
        confirm = input("  This will delete all rows in these tables. Continue? [y/N]: ")
        if confirm.lower() != 'y':
            print("  Skipping reset.")
            return

    init_db(os.environ.get("DATABASE_URL", "sqlite:///data/toolfix.sqlite"))
    engine = get_engine()
    Base.metadata.drop_all(engine, tables=tables)
    Base.metadata.create_all(engine, tables=tables)
    print("  ✅ Tables dropped and recreated.")


def main():
    parser = argparse.ArgumentParser(description="Reset the ToolFix database.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompts")
    parser.add_argument("--only", choices=sorted(TABLE_GROUPS), help="Only reset one group of tables")
    args = parser.parse_args()

    load_dotenv(project_root / ".env")

    print("\n⚠️ WARNING: Database Reset ⚠️\n")
    reset_tables(args.only, args.force)
    print("✅ Done!")


if __name__ == "__main__":
    main()
