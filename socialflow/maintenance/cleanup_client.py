# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

"""Remove a client's whole data graph and scrub captions that leaked its
branding into other clients' content.

Everything runs in one transaction: either the report printed at the end is
true of the database, or nothing changed.
"""

import os
import sys
from dataclasses import dataclass, field

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection, Engine

from .common import run_script

DEFAULT_CLIENT_SLUG = "berlin-doner"

# LIKE patterns matched against caption_ig
CONTAMINATION_PATTERNS = ["%Berlin%", "%berlin%", "%Döner%", "%doner%", "%Germany%", "%Allemagne%"]


@dataclass
class CleanupReport:
    slug: str
    client_found: bool = False
    contaminated: list[dict] = field(default_factory=list)
    deleted_conversations: int = 0
    deleted_items: int = 0
    deleted_batches: int = 0
    deleted_instructions: int = 0
    deleted_accounts: int = 0
    deleted_clients: int = 0
    reset_items: int = 0
    orphaned_conversations: int = 0


def find_contaminated(conn: Connection) -> list[dict]:
    clause = " OR ".join(f"caption_ig LIKE :p{i}" for i in range(len(CONTAMINATION_PATTERNS)))
    params = {f"p{i}": p for i, p in enumerate(CONTAMINATION_PATTERNS)}
    rows = conn.execute(
        text(f"SELECT id, content_id, caption_ig, status FROM content_items WHERE {clause} ORDER BY id"),
        params,
    ).mappings().all()
    return [dict(r) for r in rows]


def delete_client_graph(conn: Connection, client_id: int, report: CleanupReport):
    # Batch-scoped instructions reference batch ids, so collect them first
    batch_ids = conn.execute(
        text("SELECT id FROM batches WHERE client_id = :cid"), {"cid": client_id}
    ).scalars().all()

    report.deleted_conversations = conn.execute(text(
        "DELETE FROM ai_conversations WHERE content_id IN (SELECT id FROM content_items WHERE client_id = :cid)"
    ), {"cid": client_id}).rowcount
    report.deleted_items = conn.execute(
        text("DELETE FROM content_items WHERE client_id = :cid"), {"cid": client_id}
    ).rowcount
    report.deleted_batches = conn.execute(
        text("DELETE FROM batches WHERE client_id = :cid"), {"cid": client_id}
    ).rowcount

    deleted = conn.execute(
        text("DELETE FROM agent_instructions WHERE scope = 'client' AND scope_id = :cid"), {"cid": client_id}
    ).rowcount
    if batch_ids:
        deleted += conn.execute(
            text("DELETE FROM agent_instructions WHERE scope = 'batch' AND scope_id IN :ids")
            .bindparams(bindparam("ids", expanding=True)),
            {"ids": list(batch_ids)},
        ).rowcount
    report.deleted_instructions = deleted

    report.deleted_accounts = conn.execute(
        text("DELETE FROM accounts WHERE client_id = :cid"), {"cid": client_id}
    ).rowcount
    report.deleted_clients = conn.execute(
        text("DELETE FROM clients WHERE id = :cid"), {"cid": client_id}
    ).rowcount


def reset_contaminated(conn: Connection, item_ids: list[int]) -> int:
    """Send surviving contaminated rows back to caption generation.

    Only status and the two captions change.
    """
    if not item_ids:
        return 0
    return conn.execute(
        text(
            "UPDATE content_items SET status = 'NEEDS_AI', caption_ig = NULL, caption_tt = NULL "
            "WHERE id IN :ids"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": item_ids},
    ).rowcount


def cleanup(engine: Engine, slug: str) -> CleanupReport:
    report = CleanupReport(slug=slug)
    with engine.begin() as conn:
        report.contaminated = find_contaminated(conn)
        print(f"Found {len(report.contaminated)} items with contaminated captions")
        for item in report.contaminated:
            caption = (item["caption_ig"] or "")[:80]
            print(f"  [{item['id']}] {item['content_id']} ({item['status']}): {caption}")

        client_id = conn.execute(
            text("SELECT id FROM clients WHERE slug = :slug"), {"slug": slug}
        ).scalar()
        if client_id is None:
            print(f"Client '{slug}' not found in database")
        else:
            report.client_found = True
            print(f"Deleting client '{slug}' (id: {client_id})")
            delete_client_graph(conn, client_id, report)
            print(f"  Deleted {report.deleted_conversations} AI conversations")
            print(f"  Deleted {report.deleted_items} content items")
            print(f"  Deleted {report.deleted_batches} batches")
            print(f"  Deleted {report.deleted_instructions} agent instructions")
            print(f"  Deleted {report.deleted_accounts} accounts")
            print(f"  Deleted {report.deleted_clients} client")

        # Rows of the deleted client are gone; only the survivors get reset
        report.reset_items = reset_contaminated(conn, [item["id"] for item in report.contaminated])
        print(f"Reset {report.reset_items} items to NEEDS_AI")

        report.orphaned_conversations = conn.execute(text(
            "DELETE FROM ai_conversations WHERE content_id NOT IN (SELECT id FROM content_items)"
        )).rowcount
        if report.orphaned_conversations:
            print(f"Cleaned up {report.orphaned_conversations} orphaned AI conversations")
    return report


def main(db_path: str | None = None, slug: str | None = None) -> int:
    def body(engine: Engine):
        cleanup(engine, slug or os.getenv("CLEANUP_CLIENT_SLUG") or DEFAULT_CLIENT_SLUG)

    return run_script("Client cleanup", body, db_path)


if __name__ == "__main__":
    sys.exit(main())
