# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import sys

from sqlalchemy import text
from sqlalchemy.engine import Engine

from .common import column_names, run_script, table_exists

NEW_COLUMNS = [
    ("image_description", "TEXT"),
    ("description_generated_at", "TEXT"),
]


def migrate(engine: Engine) -> list[str]:
    """Add the vision-description columns to content_items. Returns the columns added."""
    added = []
    with engine.begin() as conn:
        if not table_exists(conn, "content_items"):
            raise RuntimeError("content_items table does not exist")
        existing = column_names(conn, "content_items")
        for col, col_def in NEW_COLUMNS:
            if col in existing:
                print(f"  SKIP: {col} already exists")
                continue
            conn.execute(text(f"ALTER TABLE content_items ADD COLUMN {col} {col_def}"))
            print(f"  OK: {col}")
            added.append(col)
    return added


def main(db_path: str | None = None) -> int:
    return run_script("Adding image description columns to content_items", migrate, db_path)


if __name__ == "__main__":
    sys.exit(main())
