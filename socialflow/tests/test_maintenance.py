import glob

import pytest
from sqlalchemy import inspect, text

from socialflow.db import create_sqlite_engine
from socialflow.maintenance import (
    add_image_description_column, cleanup_client, create_agent_instructions_table, init_database,
)


def insert(conn, table: str, **values) -> int:
    cols = ", ".join(values)
    params = ", ".join(f":{k}" for k in values)
    return conn.execute(text(f"INSERT INTO {table} ({cols}) VALUES ({params})"), values).lastrowid


@pytest.fixture
def seeded(engine):
    """Two clients: berlin-doner to purge, and bella whose captions were contaminated."""
    with engine.begin() as conn:
        doner = insert(conn, "clients", slug="berlin-doner", name="Berlin Doner", type="restaurant",
                       language="de", timezone="Europe/Berlin", is_active=1)
        bella = insert(conn, "clients", slug="bella", name="Bella", type="restaurant",
                       language="fr", timezone="Europe/Paris", is_active=1)
        doner_batch = insert(conn, "batches", client_id=doner, name="Week 1", slug="week-1", status="PENDING")
        bella_batch = insert(conn, "batches", client_id=bella, name="Week 1", slug="week-1", status="PENDING")

        doner_item = insert(conn, "content_items", content_id="img_001", client_id=doner, batch_id=doner_batch,
                            media_type="photo", platforms="ig,tt", slot="feed", status="NEEDS_REVIEW",
                            caption_ig="Best Döner in Berlin")
        leaked = insert(conn, "content_items", content_id="img_101", client_id=bella, batch_id=bella_batch,
                        media_type="photo", platforms="ig", slot="story", status="APPROVED",
                        caption_ig="Come to Berlin for pasta", caption_tt="tt caption",
                        caption_override="keep me", media_url="https://cdn.test/101.jpg",
                        scheduled_date="2026-03-01", updated_at="2020-01-01 00:00:00")
        clean = insert(conn, "content_items", content_id="img_102", client_id=bella, batch_id=bella_batch,
                       media_type="photo", platforms="ig,tt", slot="feed", status="NEEDS_REVIEW",
                       caption_ig="Fresh pasta every morning")

        insert(conn, "ai_conversations", content_id=doner_item, role="assistant", content="draft")
        insert(conn, "ai_conversations", content_id=clean, role="assistant", content="draft")

        insert(conn, "agent_instructions", agent_type="caption", scope="client", scope_id=doner,
               instruction_key="tone", instruction_value="spicy")
        insert(conn, "agent_instructions", agent_type="caption", scope="batch", scope_id=doner_batch,
               instruction_key="theme", instruction_value="kebab week")
        insert(conn, "agent_instructions", agent_type="caption", scope="client", scope_id=bella,
               instruction_key="tone", instruction_value="warm")
        insert(conn, "agent_instructions", agent_type="caption", scope="system",
               instruction_key="language", instruction_value="match client")

        insert(conn, "accounts", client_id=doner, platform="instagram", late_account_id="acc_doner", username="doner")
        insert(conn, "accounts", client_id=bella, platform="instagram", late_account_id="acc_bella", username="bella")

    # An orphan left behind by an older run with foreign keys disabled
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        insert(conn, "ai_conversations", content_id=9999, role="user", content="lost")
        conn.commit()
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    return {"doner": doner, "leaked": leaked, "clean": clean}


def count(engine, sql: str) -> int:
    with engine.connect() as conn:
        return conn.execute(text(sql)).scalar()


def test_cleanup_removes_client_graph(engine, seeded):
    report = cleanup_client.cleanup(engine, "berlin-doner")

    assert report.client_found
    assert [row["content_id"] for row in report.contaminated] == ["img_001", "img_101"]
    assert report.deleted_conversations == 1
    assert report.deleted_items == 1
    assert report.deleted_batches == 1
    assert report.deleted_instructions == 2
    assert report.deleted_accounts == 1
    assert report.deleted_clients == 1
    assert report.reset_items == 1
    assert report.orphaned_conversations == 1

    assert count(engine, "SELECT COUNT(*) FROM clients WHERE slug = 'berlin-doner'") == 0
    assert count(engine, "SELECT COUNT(*) FROM agent_instructions") == 2
    assert count(engine, "SELECT COUNT(*) FROM ai_conversations") == 1
    for table in ("batches", "content_items", "accounts"):
        assert count(engine, f"SELECT COUNT(*) FROM {table} WHERE client_id = {seeded['doner']}") == 0, table
    assert count(engine, f"SELECT COUNT(*) FROM agent_instructions WHERE scope = 'client' AND scope_id = {seeded['doner']}") == 0


def test_cleanup_reset_only_touches_status_and_captions(engine, seeded):
    cleanup_client.cleanup(engine, "berlin-doner")

    with engine.connect() as conn:
        row = conn.execute(text("SELECT * FROM content_items WHERE id = :id"), {"id": seeded["leaked"]}).mappings().one()
        untouched = conn.execute(text("SELECT status, caption_ig FROM content_items WHERE id = :id"),
                                 {"id": seeded["clean"]}).one()

    assert row["status"] == "NEEDS_AI"
    assert row["caption_ig"] is None
    assert row["caption_tt"] is None
    assert row["caption_override"] == "keep me"
    assert row["media_url"] == "https://cdn.test/101.jpg"
    assert row["scheduled_date"] == "2026-03-01"
    assert row["slot"] == "story"
    assert row["updated_at"] == "2020-01-01 00:00:00"
    assert tuple(untouched) == ("NEEDS_REVIEW", "Fresh pasta every morning")


def test_cleanup_without_target_client_still_scrubs(engine, seeded):
    report = cleanup_client.cleanup(engine, "no-such-client")

    assert not report.client_found
    assert report.deleted_items == 0
    # Both contaminated rows survive, so both are reset
    assert report.reset_items == 2


def test_cleanup_main_reads_slug_from_env(db_path, engine, seeded, monkeypatch, capsys):
    monkeypatch.setenv("CLEANUP_CLIENT_SLUG", "bella")

    assert cleanup_client.main(db_path) == 0

    assert count(engine, "SELECT COUNT(*) FROM clients WHERE slug = 'bella'") == 0
    assert count(engine, "SELECT COUNT(*) FROM clients WHERE slug = 'berlin-doner'") == 1
    assert "Deleting client 'bella'" in capsys.readouterr().out


def test_scripts_fail_on_missing_database(tmp_path, capsys):
    missing = str(tmp_path / "nope.db")

    assert cleanup_client.main(missing) == 1
    assert add_image_description_column.main(missing) == 1
    captured = capsys.readouterr()
    assert "ERROR: database not found" in captured.err
    assert "ERROR" not in captured.out


def test_image_description_migration_is_idempotent(db_path):
    engine = create_sqlite_engine(db_path)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE content_items (id INTEGER PRIMARY KEY, content_id TEXT)"))

    assert add_image_description_column.migrate(engine) == ["image_description", "description_generated_at"]
    assert add_image_description_column.migrate(engine) == []

    columns = {c["name"] for c in inspect(engine).get_columns("content_items")}
    assert {"image_description", "description_generated_at"} <= columns
    engine.dispose()


def test_image_description_migration_fails_without_table(db_path, capsys):
    engine = create_sqlite_engine(db_path)
    with engine.connect():
        pass
    engine.dispose()

    assert add_image_description_column.main(db_path) == 1
    assert "ERROR: content_items" in capsys.readouterr().err


def test_agent_instructions_table_created_once(db_path):
    engine = create_sqlite_engine(db_path)
    with engine.connect():
        pass

    assert create_agent_instructions_table.migrate(engine) is True
    assert create_agent_instructions_table.migrate(engine) is False

    indexes = {i["name"] for i in inspect(engine).get_indexes("agent_instructions")}
    assert "idx_agent_instructions_lookup" in indexes
    engine.dispose()


def test_agent_instruction_uniqueness_is_enforced(engine):
    with engine.begin() as conn:
        insert(conn, "agent_instructions", agent_type="caption", scope="client", scope_id=1,
               instruction_key="tone", instruction_value="warm")

    with pytest.raises(Exception):
        with engine.begin() as conn:
            insert(conn, "agent_instructions", agent_type="caption", scope="client", scope_id=1,
                   instruction_key="tone", instruction_value="cold")


def test_init_database_creates_schema_and_backs_up(tmp_path):
    path = str(tmp_path / "config" / "socialflow.db")

    assert init_database.main(path) == 0
    engine = create_sqlite_engine(path)
    tables = set(inspect(engine).get_table_names())
    engine.dispose()
    assert {"clients", "batches", "content_items", "accounts", "ai_conversations", "agent_instructions"} <= tables
    assert glob.glob(f"{path}.backup.*") == []

    assert init_database.main(path) == 0
    assert len(glob.glob(f"{path}.backup.*")) == 1
