"""Database initialization helper.

Creates the configured database schema, seeds the default categories and
locations when the store is empty, and emits SQL DDL into
``database/schema.sql``.

Copyright (c) Bryn Gwalad 2025
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure project root is on sys.path so `from api import ...` works when
# running this script directly (python database/init_db.py).
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from api.config import Settings  # noqa: E402
from utils.database import Store  # noqa: E402


def main(argv=None) -> None:
    """Create the database and emit SQL DDL.

    The database URL comes from ``DATABASE_URL`` or falls back to
    ``SQLITE_FILE``.
    """
    p = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    p.add_argument("--no-seed", action="store_true", help="skip the default categories and locations")
    p.add_argument("--schema", default=str(Path("database") / "schema.sql"), help="where to write the DDL")
    args = p.parse_args(argv)

    settings = Settings()
    print(f"Using database URL: {settings.database_url}")
    store = Store(settings.database_url)
    try:
        print("Creating tables...")
        store.init_schema()
        print("Tables created.")

        if not args.no_seed:
            seeded = store.seed_defaults()
            print("Seeded default data." if seeded else "Store already has data; seeding skipped.")

        print(f"Writing SQL DDL to {args.schema}")
        store.write_schema(args.schema)
    finally:
        store.dispose()

    print("Done.\n")


if __name__ == "__main__":
    main()
