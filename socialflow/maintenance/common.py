# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import os
import sys
from typing import Callable

from dotenv import load_dotenv
from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine

from ..db import create_sqlite_engine, resolve_db_path

RULE = "=" * 60


def banner(title: str):
    print(RULE)
    print(title)
    print(RULE)


def run_script(title: str, body: Callable[[Engine], None], db_path: str | None = None, require_file: bool = True) -> int:
    """Open the database, run ``body`` and turn any failure into exit code 1."""
    load_dotenv()
    path = resolve_db_path(db_path)
    banner(title)
    print(f"Database: {path}")

    if require_file and not os.path.exists(path):
        print(f"ERROR: database not found at {path}", file=sys.stderr)
        return 1

    engine = create_sqlite_engine(path)
    try:
        body(engine)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    print(RULE)
    print("Done.")
    return 0


def table_exists(conn: Connection, table: str) -> bool:
    return inspect(conn).has_table(table)


def column_names(conn: Connection, table: str) -> set[str]:
    return {c["name"] for c in inspect(conn).get_columns(table)}
