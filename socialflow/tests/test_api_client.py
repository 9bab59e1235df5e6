import pytest
import requests
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from socialflow.api import (
    ApiError, NetworkError, ValidationError, WebhookClient,
    sanitize_error_message, validate_id, validate_slug,
)
from socialflow.schemas import (
    ContentItemsOptions, ContentStatus, HealthStatus, InstructionScope,
    LateAccount, classify_health, days_until,
)

BASE = "http://n8n.test/webhook"


def make_response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session, headers={})


@pytest.fixture
def client(session):
    return WebhookClient(BASE, timeout=30, workflow_timeout=90, session=session)


def test_get_clients_goes_through_api_route(client, session):
    session.request.return_value = make_response(payload={
        "success": True,
        "data": [{"id": 1, "slug": "acme", "name": "Acme", "type": "restaurant", "language": "en", "timezone": "Europe/Berlin"}],
    })

    clients = client.get_clients()

    assert [c.slug for c in clients] == ["acme"]
    session.request.assert_called_once_with(
        "GET", f"{BASE}/api", params={"route": "/clients"}, json=None, timeout=30
    )


def test_success_false_raises_server_message_verbatim(client, session):
    session.request.return_value = make_response(payload={"success": False, "error": "Client not found"})

    with pytest.raises(ApiError) as exc:
        client.get_client("ghost")
    assert exc.value.message == "Client not found"


def test_http_error_uses_sanitized_body_message(client, session):
    session.request.return_value = make_response(500, {"error": "<script>x</script>crash in /srv/n8n/app.js"})

    with pytest.raises(ApiError) as exc:
        client.get_stats()
    assert exc.value.status_code == 500
    assert exc.value.message == "xcrash in [path]"


def test_http_error_without_body_reports_status(client, session):
    session.request.return_value = make_response(502)

    with pytest.raises(ApiError, match=r"Server error \(502\)"):
        client.get_stats()


def test_non_object_body_is_rejected(client, session):
    session.request.return_value = make_response(payload=["unexpected"])

    with pytest.raises(ApiError, match="Invalid response format"):
        client.get_settings()


@pytest.mark.parametrize("exc, message", [
    (requests.Timeout(), "Request timed out - please try again"),
    (requests.ConnectionError(), "Network error - check your connection"),
    (requests.RequestException(), "Unable to reach server"),
])
def test_transport_failures_become_network_errors(client, session, exc, message):
    session.request.side_effect = exc

    with pytest.raises(NetworkError) as err:
        client.get_clients()
    assert err.value.message == message
    assert session.request.call_count == 1


def test_workflow_trigger_posts_to_hook_with_workflow_timeout(client, session):
    session.request.return_value = make_response(payload={"success": True, "message": "started"})

    result = client.trigger_ingest("acme", "week-1")

    assert result.success
    session.request.assert_called_once_with(
        "POST", f"{BASE}/w1-ingest", params=None, json={"client": "acme", "batch": "week-1"}, timeout=90
    )


def test_content_items_route_carries_filters(client, session):
    session.request.return_value = make_response(payload={
        "success": True,
        "data": {"items": [{"id": 4, "content_id": "img_004", "status": "NEEDS_REVIEW"}],
                 "pagination": {"total": 1, "limit": 20, "offset": 0, "has_more": False}},
    })

    page = client.get_content_items("acme", "week 1", ContentItemsOptions(status=ContentStatus.NEEDS_REVIEW, limit=20))

    assert page.items[0].status == ContentStatus.NEEDS_REVIEW
    route = session.request.call_args.kwargs["params"]["route"]
    assert route == "/items/acme/week%201?status=NEEDS_REVIEW&limit=20"


def test_batches_accepts_bare_list_payload(client, session):
    session.request.return_value = make_response(payload={"success": True, "data": [{"name": "Week 1", "slug": "week-1"}]})

    assert client.get_batches("acme")[0].slug == "week-1"


def test_invalid_slug_fails_before_any_request(client, session):
    with pytest.raises(ValidationError):
        client.delete_client("../etc")
    session.request.assert_not_called()


def test_scoped_instruction_requires_scope_id(client, session):
    with pytest.raises(ValidationError, match="scopeId is required"):
        client.update_agent_instruction("caption", InstructionScope.CLIENT, "tone", "warm")
    session.request.assert_not_called()


def test_batch_instruction_route(client, session):
    session.request.return_value = make_response(payload={"success": True})

    client.update_agent_instruction("caption", InstructionScope.BATCH, "tone", "warm", "acme/week-1")

    assert session.request.call_args.kwargs["params"] == {"route": "/batches/acme/week-1/instructions"}


@pytest.mark.parametrize("slug", ["", None, "a/b", "a\\b", "..", "x" * 101])
def test_validate_slug_rejects(slug):
    with pytest.raises(ValidationError):
        validate_slug(slug)


@pytest.mark.parametrize("value", [0, -1, "abc", "1.5", True, None])
def test_validate_id_rejects(value):
    with pytest.raises(ValidationError):
        validate_id(value)


def test_validate_id_normalizes():
    assert validate_id(" 42 ") == "42"
    assert validate_id(7) == "7"


def test_sanitize_strips_stack_frames_and_paths():
    raw = 'Failed to read C:\\data\\clients\\x.db\nTraceback (most recent call last)\n  File "/app/run.py", line 3\n    at Object.run (/srv/index.js:10)'
    cleaned = sanitize_error_message(raw)
    assert "Traceback" not in cleaned
    assert "run.py" not in cleaned
    assert "index.js" not in cleaned
    assert cleaned.startswith("Failed to read [path]")


def test_sanitize_keeps_urls_and_hides_single_segment_paths():
    cleaned = sanitize_error_message("Tunnel https://flow.example.com/webhook/api failed; see /db.sqlite")
    assert cleaned == "Tunnel https://flow.example.com/webhook/api failed; see [path]"


def test_sanitize_caps_length_and_handles_non_strings():
    assert len(sanitize_error_message("a" * 2000)) == 500
    assert sanitize_error_message(None) == "Unknown error"


@pytest.mark.parametrize("days, health", [
    (None, HealthStatus.HEALTHY),
    (-1, HealthStatus.EXPIRED),
    (0, HealthStatus.WARNING),
    (7, HealthStatus.WARNING),
    (8, HealthStatus.HEALTHY),
])
def test_classify_health(days, health):
    assert classify_health(days) == health


def test_account_health_derived_from_expiry():
    expires = datetime.now(timezone.utc) + timedelta(days=3, hours=1)
    account = LateAccount(id="acc_1", platform="instagram", username="acme", token_expires_at=expires)
    assert account.days_until_expiry == 3
    assert account.health == HealthStatus.WARNING


def test_server_supplied_health_is_kept():
    account = LateAccount(id="acc_1", platform="tiktok", username="acme", health="expired", days_until_expiry=-2)
    assert account.health == HealthStatus.EXPIRED


def test_days_until_treats_naive_as_utc():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert days_until(datetime(2026, 1, 11), now=now) == 10


def test_progress_envelope_is_flattened(client, session):
    session.request.return_value = make_response(payload={
        "success": True,
        "data": {
            "progress": {"current": 3, "total": 10, "stage": "describing", "file_name": "img_003.jpg"},
            "started_at": "2026-03-01T09:00:00Z",
            "is_running": True,
        },
    })

    progress = client.get_ingest_progress("acme", "week-1")

    assert (progress.current, progress.total, progress.stage) == (3, 10, "describing")
    assert progress.file_name == "img_003.jpg"
    assert progress.is_running
    assert progress.started_at == "2026-03-01T09:00:00Z"
    assert session.request.call_args.kwargs["params"] == {"route": "/batches/acme/week-1/ingest-progress"}


def test_idle_progress_has_no_counts(client, session):
    session.request.return_value = make_response(payload={
        "success": True, "data": {"progress": None, "started_at": None, "is_running": False},
    })

    progress = client.get_generation_progress("acme", "week-1")

    assert not progress.is_running
    assert progress.total == 0


def test_conversation_sessions_are_flattened_into_rounds(client, session):
    session.request.return_value = make_response(payload={
        "success": True,
        "data": {
            "content_id": "img_004",
            "sessions": [
                {"session_id": "s1", "rounds": [
                    {"id": 1, "round_number": 1, "role": "user", "prompt": "Describe"},
                    {"id": 2, "round_number": 1, "role": "assistant", "response": "A falafel wrap"},
                ]},
                {"session_id": "s2", "rounds": [{"id": 3, "round_number": 1, "role": "assistant", "response": "Retry"}]},
            ],
            "total_conversations": 3,
        },
    })

    rows = client.get_item_conversations("acme", "week-1", 4)

    assert [(r.session_id, r.id) for r in rows] == [("s1", 1), ("s1", 2), ("s2", 3)]
    assert session.request.call_args.kwargs["params"] == {"route": "/items/acme/week-1/4/conversations"}
