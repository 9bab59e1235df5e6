# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import sys

from sqlalchemy.engine import Engine

from ..models import AgentInstruction
from .common import run_script, table_exists


def migrate(engine: Engine) -> bool:
    """Create agent_instructions and its lookup index. Returns False when it already existed."""
    table = AgentInstruction.__table__
    with engine.begin() as conn:
        if table_exists(conn, table.name):
            print(f"  SKIP: {table.name} already exists")
            # Older installs may have the table without the index
            for index in table.indexes:
                index.create(conn, checkfirst=True)
            return False
        table.create(conn)
        print(f"  OK: created {table.name}")
        for index in table.indexes:
            print(f"  OK: index {index.name}")
    return True


def main(db_path: str | None = None) -> int:
    return run_script("Creating agent_instructions table", migrate, db_path)


if __name__ == "__main__":
    sys.exit(main())
