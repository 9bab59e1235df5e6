import time

import pytest
from fastapi.testclient import TestClient

from socialflow.api.errors import ApiError
from socialflow.schemas import (
    AccountsData, AgentInstruction, AgentSettings, AIConversation, BatchStatus, Client, ContentItemsPage,
    CreateClientInput, DashboardStats, IngestProgress, InstructionScope, WorkflowResult,
)
from socialflow.web import create_app


def make_client(slug="acme", name="Acme Bistro") -> Client:
    return Client(id=1, slug=slug, name=name, type="restaurant", language="en", timezone="Europe/Berlin")


@pytest.fixture
def app(settings, mock_client):
    return create_app(settings, client=mock_client)


@pytest.fixture
def http(app):
    with TestClient(app) as tc:
        yield tc


def test_clients_empty_state_has_create_action(http, mock_client):
    mock_client.get_clients.return_value = []

    resp = http.get("/clients")

    assert resp.status_code == 200
    assert 'data-state="empty"' in resp.text
    assert "No clients yet" in resp.text
    assert 'href="/clients/new"' in resp.text


def test_clients_list_renders_cards(http, mock_client):
    mock_client.get_clients.return_value = [make_client(), make_client("bella", "Bella <Pasta>")]

    resp = http.get("/clients")

    assert "Acme Bistro" in resp.text
    assert "Bella &lt;Pasta&gt;" in resp.text
    assert 'href="/clients/bella"' in resp.text


def test_error_state_shows_sanitized_message_and_retry(http, mock_client):
    mock_client.get_clients.side_effect = ApiError("<b>Database locked</b> at /data/clients/_config/socialflow.db")

    resp = http.get("/clients")

    assert resp.status_code == 200
    assert 'data-state="error"' in resp.text
    assert "Database locked at [path]" in resp.text
    assert "socialflow.db" not in resp.text
    assert "/clients?refetch=1" in resp.text


def test_slow_query_renders_loading_with_auto_refresh(settings, mock_client):
    settings.view_wait_seconds = 0.05
    mock_client.get_clients.side_effect = lambda: (time.sleep(0.3), [])[1]

    with TestClient(create_app(settings, client=mock_client)) as tc:
        resp = tc.get("/clients?refetch=1")

    assert 'data-state="loading"' in resp.text
    # The refresh target drops refetch so the reload does not restart the request
    assert 'http-equiv="refresh" content="2;url=/clients"' in resp.text


def test_cached_reads_and_refetch(http, mock_client):
    mock_client.get_clients.return_value = [make_client()]

    http.get("/clients")
    http.get("/clients")
    assert mock_client.get_clients.call_count == 1

    http.get("/clients?refetch=1")
    assert mock_client.get_clients.call_count == 2


def test_notice_query_renders_toast(http, mock_client):
    mock_client.get_clients.return_value = []

    resp = http.get("/clients", params={"notice": "Client deleted", "kind": "success"})

    assert 'id="toast"' in resp.text
    assert "Client deleted" in resp.text


def test_create_client_redirects_with_notice(http, mock_client):
    mock_client.create_client.return_value = make_client()

    resp = http.post(
        "/clients/new",
        data={"name": "Acme Bistro", "slug": "acme", "type": "restaurant", "language": "en", "timezone": "Europe/Paris"},
        follow_redirects=False,
    )

    assert resp.status_code == 303
    assert resp.headers["location"].startswith("/clients/acme?notice=Client+created")
    payload = mock_client.create_client.call_args.args[0]
    assert isinstance(payload, CreateClientInput)
    assert payload.timezone == "Europe/Paris"


def test_create_client_rejects_unknown_timezone(http, mock_client):
    resp = http.post(
        "/clients/new",
        data={"name": "Acme", "slug": "acme", "type": "restaurant", "language": "en", "timezone": "Mars/Olympus"},
        follow_redirects=False,
    )

    assert resp.status_code == 400
    assert "unknown timezone" in resp.text
    mock_client.create_client.assert_not_called()


def test_failed_delete_redirects_back_with_error(http, mock_client):
    mock_client.delete_client.side_effect = ApiError("Client has scheduled posts")

    resp = http.post("/clients/acme/delete", follow_redirects=False)

    assert resp.status_code == 303
    location = resp.headers["location"]
    assert location.startswith("/clients/acme?")
    assert "kind=error" in location
    assert "scheduled+posts" in location


def test_client_detail_with_no_batches(http, mock_client):
    mock_client.get_client.return_value = make_client()
    mock_client.get_batches.return_value = []

    resp = http.get("/clients/acme")

    assert "Acme Bistro" in resp.text
    assert "No batches yet" in resp.text
    mock_client.get_batches.assert_called_once_with("acme")


def test_batch_page_lists_items_with_review_actions(http, mock_client):
    mock_client.get_batch_status.return_value = BatchStatus(client="acme", batch="week-1", counts={"total": 1, "needs_review": 1})
    mock_client.get_content_items.return_value = ContentItemsPage(
        items=[{"id": 9, "content_id": "img_009", "status": "NEEDS_REVIEW", "caption_ig": "Fresh today"}],
        pagination={"total": 1, "limit": 20, "offset": 0, "has_more": False},
    )

    resp = http.get("/clients/acme/batches/week-1?status=NEEDS_REVIEW")

    assert resp.status_code == 200
    assert "img_009" in resp.text
    assert 'action="/items/9/approve"' in resp.text
    assert 'action="/clients/acme/batches/week-1/approve-all"' in resp.text
    options = mock_client.get_content_items.call_args.args[2]
    assert options.status.value == "NEEDS_REVIEW"
    assert options.limit == 20
    # Nothing waits on captions, so progress is never polled
    mock_client.get_generation_progress.assert_not_called()


def test_approve_item_redirects_to_next(http, mock_client):
    resp = http.post("/items/9/approve", data={"next": "/clients/acme/batches/week-1"}, follow_redirects=False)

    assert resp.status_code == 303
    assert resp.headers["location"].startswith("/clients/acme/batches/week-1?notice=Item+approved")
    mock_client.approve_item.assert_called_once_with(9)


def test_next_must_stay_on_site(http, mock_client):
    resp = http.post("/items/9/reject", data={"next": "//evil.example"}, follow_redirects=False)

    assert resp.headers["location"].startswith("/?notice=")
    mock_client.reject_item.assert_called_once_with(9, None)


def test_batch_workflow_action(http, mock_client):
    mock_client.trigger_schedule.return_value = WorkflowResult(success=True)

    resp = http.post("/clients/acme/batches/week-1/schedule", follow_redirects=False)

    assert resp.status_code == 303
    mock_client.trigger_schedule.assert_called_once_with("acme", "week-1")


def test_unknown_batch_action_is_404(http, mock_client):
    resp = http.post("/clients/acme/batches/week-1/explode", follow_redirects=False)
    assert resp.status_code == 404


def test_accounts_page_and_sync(http, mock_client):
    mock_client.get_accounts.return_value = AccountsData(
        accounts=[{"id": "a1", "platform": "instagram", "username": "acme", "days_until_expiry": -3}]
    )

    page = http.get("/accounts")
    assert 'data-health="expired"' in page.text

    resp = http.post("/accounts/sync", follow_redirects=False)
    assert resp.status_code == 303
    mock_client.sync_accounts.assert_called_once_with()


def test_settings_rejects_plain_http_tunnel(http, mock_client):
    resp = http.post("/settings", data={"cloudflare_tunnel_url": "http://insecure.example"}, follow_redirects=False)

    assert "kind=error" in resp.headers["location"]
    mock_client.update_settings.assert_not_called()


def test_responses_carry_request_id(http, mock_client):
    mock_client.get_clients.return_value = []

    resp = http.get("/clients", headers={"X-Request-ID": "req-123"})

    assert resp.headers["X-Request-ID"] == "req-123"


def test_dashboard_shows_stats_and_engine_link(http, mock_client):
    mock_client.get_stats.return_value = DashboardStats(clients=3, batches=5, content_items={"needs_review": 4})
    mock_client.get_accounts.return_value = AccountsData()
    mock_client.get_jobs.return_value = []

    resp = http.get("/")

    assert resp.status_code == 200
    assert 'href="http://n8n.test"' in resp.text
    assert "Needs review" in resp.text
    assert "No accounts synced" in resp.text


def test_batch_page_shows_ingest_progress_instructions_and_schedule(http, mock_client):
    mock_client.get_batch_status.return_value = BatchStatus(
        client="acme", batch="week-1", counts={"total": 2, "pending": 1, "approved": 1}
    )
    mock_client.get_content_items.return_value = ContentItemsPage(
        items=[{"id": 4, "content_id": "img_004", "status": "APPROVED", "platforms": "ig", "slot": "story"}],
        pagination={"total": 1, "limit": 20, "offset": 0, "has_more": False},
    )
    mock_client.get_ingest_progress.return_value = IngestProgress(current=1, total=2, stage="describing", is_running=True)
    mock_client.get_agent_instructions.return_value = [
        AgentInstruction(agent_type="caption_generator", scope="batch", instruction_key="theme", instruction_value="spring menu"),
    ]

    resp = http.get("/clients/acme/batches/week-1")

    assert 'data-progress="ingesting"' in resp.text
    assert "1 / 2 describing" in resp.text
    mock_client.get_ingest_progress.assert_called_once_with("acme", "week-1")
    mock_client.get_generation_progress.assert_not_called()
    mock_client.get_agent_instructions.assert_called_once_with(InstructionScope.BATCH, "acme/week-1")
    assert "spring menu" in resp.text
    assert 'name="scope_id" value="acme/week-1"' in resp.text
    assert 'action="/clients/acme/batches/week-1/schedule-items"' in resp.text
    assert 'name="slot_4"' in resp.text
    assert 'href="/clients/acme/batches/week-1/items/4/conversations"' in resp.text
    assert 'action="/items/4/platforms"' in resp.text
    assert '<option value="ig" selected>' in resp.text


def test_schedule_items_skips_blank_rows(http, mock_client):
    resp = http.post(
        "/clients/acme/batches/week-1/schedule-items",
        data={
            "ids": ["4", "5"],
            "date_4": "2026-03-01", "time_4": "09:30", "slot_4": "story",
            "date_5": "", "time_5": "",
            "timezone": "Europe/Paris",
            "next": "/clients/acme/batches/week-1",
        },
        follow_redirects=False,
    )

    assert resp.status_code == 303
    assert "notice=Schedule+saved+for+1+items" in resp.headers["location"]
    client, batch, items, timezone = mock_client.bulk_update_schedule.call_args.args
    assert (client, batch, timezone) == ("acme", "week-1", "Europe/Paris")
    assert [(i.id, i.scheduled_date, i.scheduled_time, i.slot) for i in items] == [(4, "2026-03-01", "09:30", "story")]


def test_schedule_items_rejects_unknown_slot(http, mock_client):
    resp = http.post(
        "/clients/acme/batches/week-1/schedule-items",
        data={"ids": ["4"], "date_4": "2026-03-01", "time_4": "09:30", "slot_4": "reel"},
        follow_redirects=False,
    )

    assert "kind=error" in resp.headers["location"]
    mock_client.bulk_update_schedule.assert_not_called()


def test_schedule_items_without_dates_is_an_error(http, mock_client):
    resp = http.post("/clients/acme/batches/week-1/schedule-items", data={"ids": ["4"]}, follow_redirects=False)

    assert "kind=error" in resp.headers["location"]
    mock_client.bulk_update_schedule.assert_not_called()


def test_item_conversations_page(http, mock_client):
    mock_client.get_item_conversations.return_value = [
        AIConversation(session_id="s1", round_number=1, role="user", prompt="Describe the dish"),
        AIConversation(session_id="s1", round_number=1, role="assistant", response="Golden <crispy> falafel"),
    ]

    resp = http.get("/clients/acme/batches/week-1/items/4/conversations")

    assert resp.status_code == 200
    mock_client.get_item_conversations.assert_called_once_with("acme", "week-1", 4)
    assert "Session s1" in resp.text
    assert "Describe the dish" in resp.text
    assert "Golden &lt;crispy&gt; falafel" in resp.text


def test_item_conversations_empty_state(http, mock_client):
    mock_client.get_item_conversations.return_value = []

    resp = http.get("/clients/acme/batches/week-1/items/4/conversations")

    assert 'data-state="empty"' in resp.text
    assert 'href="/clients/acme/batches/week-1"' in resp.text


def test_update_item_platforms(http, mock_client):
    resp = http.post(
        "/items/4/platforms", data={"platforms": "ig", "next": "/clients/acme/batches/week-1"}, follow_redirects=False
    )

    assert resp.headers["location"].startswith("/clients/acme/batches/week-1?notice=Platforms+updated")
    mock_client.update_item_platforms.assert_called_once_with(4, "ig")


def test_agents_page_edits_agent_models(http, mock_client):
    mock_client.get_agent_instructions.return_value = []
    mock_client.get_agent_settings.return_value = AgentSettings(
        agents={"caption_generator": {"model": "llava:7b", "master_prompt": "Write warm captions"}}
    )

    page = http.get("/agents")
    assert 'data-agent="caption_generator"' in page.text
    assert 'value="llava:7b"' in page.text
    assert "Write warm captions" in page.text

    resp = http.post(
        "/agents/settings", data={"agent_type": "caption_generator", "model": "llava:13b"}, follow_redirects=False
    )
    assert resp.headers["location"].startswith("/agents?notice=Agent+settings+saved")
    mock_client.update_agent_settings.assert_called_once_with("caption_generator", "llava:13b", None)
