# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import os
import shutil
import sys
import time

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ..models import Base
from .common import run_script


def backup_database(path: str) -> str | None:
    """Copy an existing database aside before touching its schema."""
    if not os.path.exists(path):
        return None
    backup_path = f"{path}.backup.{int(time.time() * 1000)}"
    shutil.copy2(path, backup_path)
    print(f"Backup created: {backup_path}")
    return backup_path


def create_schema(engine: Engine) -> tuple[list[str], list[str]]:
    Base.metadata.create_all(engine)
    with engine.connect() as conn:
        tables = conn.execute(text(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )).scalars().all()
        indexes = conn.execute(text(
            "SELECT name FROM sqlite_master WHERE type='index' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )).scalars().all()

    print("Tables:")
    for name in tables:
        print(f"  - {name}")
    print("Indexes:")
    for name in indexes:
        print(f"  - {name}")
    return list(tables), list(indexes)


def initialize(engine: Engine):
    path = engine.url.database
    directory = os.path.dirname(path)
    if directory and not os.path.isdir(directory):
        os.makedirs(directory, exist_ok=True)
        print(f"Created directory: {directory}")
    backup_database(path)
    create_schema(engine)


def main(db_path: str | None = None) -> int:
    return run_script("SocialFlow database initialization", initialize, db_path, require_file=False)


if __name__ == "__main__":
    sys.exit(main())
