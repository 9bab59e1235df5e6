# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import uuid
from typing import Any
from urllib.parse import quote, urlencode

import requests

from ..config import Settings, get_settings
from ..logging_setup import log_event
from ..schemas import (
    AccountsData, ActionResult, AgentInstruction, AgentSettings, AIConversation,
    AppSettings, ArchivedClient, Batch, BatchStatus, BulkApproveResult,
    BulkScheduleResult, Client, ContentItem, ContentItemsOptions, ContentItemsPage,
    CreateClientInput, DashboardStats, GenerationProgress, IngestProgress,
    InstructionScope, Job, ScheduleUpdateItem, WorkflowResult,
)
from .errors import ApiError, NetworkError, ValidationError, sanitize_error_message

MAX_SLUG_LENGTH = 100


def encode_route(*segments: str) -> str:
    return "/".join(quote(str(s), safe="") for s in segments)


def validate_slug(slug) -> str:
    if not slug or not isinstance(slug, str):
        raise ValidationError("Invalid slug: must be non-empty string")
    if ".." in slug or "/" in slug or "\\" in slug:
        raise ValidationError("Invalid slug: contains forbidden characters")
    if len(slug) > MAX_SLUG_LENGTH:
        raise ValidationError("Invalid slug: exceeds maximum length")
    return slug


def validate_id(value) -> str:
    if isinstance(value, bool):
        raise ValidationError("Invalid ID: must be positive integer")
    try:
        num = int(str(value).strip(), 10)
    except (TypeError, ValueError):
        raise ValidationError("Invalid ID: must be positive integer")
    if num < 1:
        raise ValidationError("Invalid ID: must be positive integer")
    return str(num)


def split_batch_scope(scope_id) -> tuple[str, str]:
    """Batch-scoped instructions are addressed as ``client/batch``."""
    parts = str(scope_id).split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValidationError(f"Invalid batch scopeId format: expected 'client/batch', got '{scope_id}'")
    return validate_slug(parts[0]), validate_slug(parts[1])


def unwrap_progress(payload) -> dict:
    """Flatten ``{progress: {...}, started_at, is_running}`` into one mapping."""
    if not isinstance(payload, dict):
        return {}
    if "progress" not in payload and "is_running" not in payload:
        return payload
    flat = dict(payload.get("progress") or {})
    flat["is_running"] = bool(payload.get("is_running"))
    if payload.get("started_at") and not flat.get("started_at"):
        flat["started_at"] = payload["started_at"]
    return flat


class WebhookClient:
    """Typed access to the workflow engine's webhook endpoints.

    Generic routes go through ``{base}/api?route=...``; workflow triggers are
    posted straight to their own webhook. Failures raise ``ApiError`` (or
    ``NetworkError`` when nothing answered). Nothing here retries.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        workflow_timeout: float = 120.0,
        tunnel_test_timeout: float = 15.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.workflow_timeout = workflow_timeout
        self.tunnel_test_timeout = tunnel_test_timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Content-Type", "application/json")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "WebhookClient":
        settings = settings or get_settings()
        return cls(
            settings.api_base,
            timeout=settings.api_timeout,
            workflow_timeout=settings.workflow_timeout,
            tunnel_test_timeout=settings.tunnel_test_timeout,
        )

    def close(self):
        self.session.close()

    # --- transport ---

    def _send(self, method: str, path: str, *, params=None, body=None, timeout=None) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = self.session.request(
                method, url, params=params, json=body, timeout=timeout or self.timeout
            )
        except requests.Timeout:
            log_event("api_request_timeout", level="warning", method=method, path=path, route=(params or {}).get("route"))
            raise NetworkError("Request timed out - please try again")
        except requests.ConnectionError:
            log_event("api_request_unreachable", level="warning", method=method, path=path, route=(params or {}).get("route"))
            raise NetworkError("Network error - check your connection")
        except requests.RequestException as e:
            log_event("api_request_failed", level="warning", method=method, path=path, error=str(e))
            raise NetworkError("Unable to reach server")

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            raw = None
            if isinstance(data, dict):
                raw = data.get("error") or data.get("message")
            message = sanitize_error_message(raw or f"Server error ({resp.status_code})")
            log_event("api_request_error", level="warning", method=method, path=path, status_code=resp.status_code)
            raise ApiError(message, status_code=resp.status_code)

        if not isinstance(data, dict):
            raise ApiError("Invalid response format", status_code=resp.status_code)
        return data

    def _route(self, method: str, route: str, body=None) -> dict:
        data = self._send(method, "/api", params={"route": route}, body=body)
        if data.get("success") is False:
            raise ApiError(data.get("error") or data.get("message") or "API request failed")
        return data

    def _workflow(self, hook: str, body: dict, default_error: str) -> dict:
        data = self._send("POST", f"/{hook}", body=body, timeout=self.workflow_timeout)
        if data.get("success") is False:
            raise ApiError(data.get("error") or data.get("message") or default_error)
        return data

    # --- health ---

    def get_health(self) -> dict:
        return self._route("GET", "/health")

    # --- clients ---

    def get_clients(self) -> list[Client]:
        data = self._route("GET", "/clients")
        return [Client.model_validate(c) for c in data.get("data") or []]

    def get_client(self, slug: str) -> Client:
        validate_slug(slug)
        data = self._route("GET", f"/clients/{encode_route(slug)}")
        return Client.model_validate(data.get("data"))

    def create_client(self, payload: CreateClientInput) -> Client:
        data = self._route("POST", "/clients", payload.model_dump(exclude_none=True))
        return Client.model_validate(data.get("data"))

    def delete_client(self, slug: str) -> ActionResult:
        validate_slug(slug)
        return ActionResult.model_validate(self._route("DELETE", f"/clients/{encode_route(slug)}"))

    def delete_all_clients(self) -> ActionResult:
        return ActionResult.model_validate(self._route("DELETE", "/clients"))

    def archive_client(self, slug: str) -> ActionResult:
        validate_slug(slug)
        return ActionResult.model_validate(self._route("POST", f"/clients/{encode_route(slug)}/archive"))

    def get_archived_clients(self) -> list[ArchivedClient]:
        data = self._route("GET", "/archive/clients")
        return [ArchivedClient.model_validate(c) for c in data.get("data") or []]

    def restore_client(self, client_id: int) -> ActionResult:
        return ActionResult.model_validate(
            self._route("POST", f"/archive/clients/{validate_id(client_id)}/restore")
        )

    def delete_archived_client(self, client_id: int) -> ActionResult:
        return ActionResult.model_validate(
            self._route("DELETE", f"/archive/clients/{validate_id(client_id)}")
        )

    # --- late accounts ---

    def get_accounts(self) -> AccountsData:
        data = self._route("GET", "/late/accounts")
        return AccountsData.model_validate(data.get("data") or {})

    def sync_accounts(self) -> WorkflowResult:
        data = self._workflow("w0-sync", {}, "Account sync workflow failed")
        return WorkflowResult.model_validate(data)

    # --- batches ---

    def get_batches(self, client: str) -> list[Batch]:
        validate_slug(client)
        data = self._route("GET", f"/clients/{encode_route(client)}/batches")
        payload = data.get("data") or {}
        # Older workflow versions return a bare list
        batches = payload.get("batches", []) if isinstance(payload, dict) else payload
        return [Batch.model_validate(b) for b in batches]

    def get_batch_status(self, client: str, batch: str) -> BatchStatus:
        validate_slug(client)
        validate_slug(batch)
        data = self._route("GET", f"/batches/{encode_route(client, batch)}/status")
        return BatchStatus.model_validate(data.get("data"))

    def trigger_ingest(self, client: str, batch: str) -> WorkflowResult:
        validate_slug(client)
        validate_slug(batch)
        data = self._workflow("w1-ingest", {"client": client, "batch": batch}, "Ingest workflow failed")
        return WorkflowResult.model_validate(data)

    def trigger_generate(self, client: str, batch: str) -> WorkflowResult:
        validate_slug(client)
        validate_slug(batch)
        data = self._workflow("w2-captions", {"client": client, "batch": batch}, "Caption generation workflow failed")
        return WorkflowResult.model_validate(data)

    def trigger_schedule(self, client: str, batch: str) -> WorkflowResult:
        validate_slug(client)
        validate_slug(batch)
        data = self._workflow("w3-schedule", {"client": client, "batch": batch}, "Schedule workflow failed")
        return WorkflowResult.model_validate(data)

    def reset_batch(self, client: str, batch: str) -> ActionResult:
        validate_slug(client)
        validate_slug(batch)
        return ActionResult.model_validate(
            self._route("POST", f"/batches/{encode_route(client, batch)}/reset")
        )

    def get_generation_progress(self, client: str, batch: str) -> GenerationProgress:
        validate_slug(client)
        validate_slug(batch)
        data = self._route("GET", f"/batches/{encode_route(client, batch)}/generation-progress")
        return GenerationProgress.model_validate(unwrap_progress(data.get("data")))

    def get_ingest_progress(self, client: str, batch: str) -> IngestProgress:
        validate_slug(client)
        validate_slug(batch)
        data = self._route("GET", f"/batches/{encode_route(client, batch)}/ingest-progress")
        return IngestProgress.model_validate(unwrap_progress(data.get("data")))

    def bulk_update_schedule(
        self, client: str, batch: str, items: list[ScheduleUpdateItem], timezone: str = "Europe/Berlin"
    ) -> BulkScheduleResult:
        validate_slug(client)
        validate_slug(batch)
        if not items:
            raise ValidationError("Items array is required and must not be empty")
        body = {
            "items": [
                {**item.model_dump(), "id": int(validate_id(item.id))}
                for item in items
            ],
            "timezone": timezone,
        }
        data = self._route("POST", f"/batches/{encode_route(client, batch)}/schedule", body)
        return BulkScheduleResult.model_validate(data.get("data") or {})

    # --- settings ---

    def get_settings(self) -> AppSettings:
        data = self._route("GET", "/settings")
        return AppSettings.model_validate(data.get("data") or data.get("settings") or {})

    def update_settings(self, updates: dict[str, Any]) -> ActionResult:
        return ActionResult.model_validate(self._route("PUT", "/settings", updates))

    def test_tunnel_connection(self) -> dict:
        """Fetch a known file through the configured tunnel URL."""
        cf_url = self.get_settings().cloudflare_tunnel_url
        if not cf_url or not cf_url.startswith("https://"):
            return {"success": False, "message": "No valid Cloudflare URL configured", "url": cf_url}

        test_url = f"{cf_url}/_config/settings.json?_t={uuid.uuid4()}"
        try:
            resp = requests.get(test_url, timeout=self.tunnel_test_timeout, headers={"Cache-Control": "no-store"})
        except requests.RequestException as e:
            return {"success": False, "message": f"Cannot reach tunnel: {sanitize_error_message(str(e))}", "url": cf_url}

        if resp.ok:
            return {"success": True, "message": f"Tunnel is working! ({resp.status_code})", "url": cf_url, "status_code": resp.status_code}
        return {
            "success": False,
            "message": f"Tunnel returned error: {resp.status_code} {resp.reason}",
            "url": cf_url,
            "status_code": resp.status_code,
        }

    # --- dashboard ---

    def get_stats(self) -> DashboardStats:
        data = self._route("GET", "/stats")
        return DashboardStats.model_validate(data.get("data") or {})

    def get_jobs(self) -> list[Job]:
        data = self._route("GET", "/jobs")
        payload = data.get("data") or []
        jobs = payload.get("jobs", []) if isinstance(payload, dict) else payload
        return [Job.model_validate(j) for j in jobs]

    # --- content items ---

    def get_content_items(
        self, client: str, batch: str, options: ContentItemsOptions | None = None
    ) -> ContentItemsPage:
        validate_slug(client)
        validate_slug(batch)
        params = {}
        if options is not None:
            if options.status:
                params["status"] = options.status.value
            if options.limit:
                params["limit"] = str(options.limit)
            if options.offset:
                params["offset"] = str(options.offset)
        route = f"/items/{encode_route(client, batch)}"
        if params:
            route = f"{route}?{urlencode(params)}"
        data = self._route("GET", route)
        return ContentItemsPage.model_validate(data.get("data") or {})

    def get_content_item(self, item_id) -> ContentItem:
        data = self._route("GET", f"/item/{validate_id(item_id)}")
        return ContentItem.model_validate(data.get("data"))

    def approve_item(self, item_id) -> ContentItem:
        data = self._route("POST", f"/item/{validate_id(item_id)}/approve")
        return ContentItem.model_validate(data.get("data"))

    def reject_item(self, item_id, reason: str | None = None) -> ContentItem:
        body = {"reason": reason} if reason else None
        data = self._route("POST", f"/item/{validate_id(item_id)}/reject", body)
        return ContentItem.model_validate(data.get("data"))

    def update_item_caption(
        self,
        item_id,
        caption_ig: str | None = None,
        caption_tt: str | None = None,
        caption_override: str | None = None,
    ) -> ContentItem:
        captions = {
            k: v for k, v in
            {"caption_ig": caption_ig, "caption_tt": caption_tt, "caption_override": caption_override}.items()
            if v is not None
        }
        data = self._route("POST", f"/item/{validate_id(item_id)}/caption", captions)
        return ContentItem.model_validate(data.get("data"))

    def update_item_platforms(self, item_id, platforms: str) -> ContentItem:
        if platforms not in ("ig", "tt", "ig,tt"):
            raise ValidationError(f"Invalid platforms: {platforms}")
        data = self._route("POST", f"/item/{validate_id(item_id)}/platforms", {"platforms": platforms})
        return ContentItem.model_validate(data.get("data"))

    def approve_batch_items(self, ids: list) -> BulkApproveResult:
        validated = [validate_id(i) for i in ids]
        data = self._route("POST", "/approve-batch", {"ids": validated})
        return BulkApproveResult.model_validate(data.get("data") or {})

    def get_item_conversations(self, client: str, batch: str, content_id) -> list[AIConversation]:
        validate_slug(client)
        validate_slug(batch)
        data = self._route(
            "GET", f"/items/{encode_route(client, batch)}/{validate_id(content_id)}/conversations"
        )
        payload = data.get("data") or []
        if isinstance(payload, dict):
            # Rounds arrive grouped by agent session
            rows = [
                {"session_id": session.get("session_id"), **r}
                for session in payload.get("sessions", [])
                for r in session.get("rounds", [])
            ]
        else:
            rows = payload
        return [AIConversation.model_validate(r) for r in rows]

    # --- agents ---

    def _instruction_route(self, scope: InstructionScope, scope_id=None) -> str:
        if scope == InstructionScope.CLIENT and scope_id:
            return f"/clients/{encode_route(validate_slug(str(scope_id)))}/instructions"
        if scope == InstructionScope.BATCH and scope_id:
            client, batch = split_batch_scope(scope_id)
            return f"/batches/{encode_route(client, batch)}/instructions"
        return "/agents/instructions"

    def get_agent_instructions(self, scope: InstructionScope, scope_id=None) -> list[AgentInstruction]:
        data = self._route("GET", self._instruction_route(scope, scope_id))
        payload = data.get("data") or []
        rows = payload.get("instructions", []) if isinstance(payload, dict) else payload
        return [AgentInstruction.model_validate(r) for r in rows]

    def update_agent_instruction(
        self,
        agent_type: str,
        scope: InstructionScope,
        instruction_key: str,
        instruction_value: str,
        scope_id=None,
    ) -> ActionResult:
        if scope != InstructionScope.SYSTEM and not scope_id:
            raise ValidationError(f"scopeId is required for {scope.value} scope")
        body = {
            "agent_type": agent_type,
            "instruction_key": instruction_key,
            "instruction_value": instruction_value,
        }
        return ActionResult.model_validate(self._route("PUT", self._instruction_route(scope, scope_id), body))

    def get_agent_settings(self) -> AgentSettings:
        data = self._route("GET", "/agents/settings")
        return AgentSettings.model_validate({"agents": data.get("data") or {}})

    def update_agent_settings(self, agent_type: str, model: str | None = None, master_prompt: str | None = None) -> ActionResult:
        body = {"agent_type": agent_type}
        if model is not None:
            body["model"] = model
        if master_prompt is not None:
            body["master_prompt"] = master_prompt
        return ActionResult.model_validate(self._route("PUT", "/agents/settings", body))

    def generate_client_config(self, slug: str, onboarding: dict) -> dict:
        validate_slug(slug)
        return self._workflow("w-agent1-config", {"slug": slug, "onboarding": onboarding}, "Config generation failed")

    def generate_batch_brief(self, client: str, batch: str, brief: dict | None = None) -> dict:
        validate_slug(client)
        validate_slug(batch)
        body = {"client": client, "batch": batch, **(brief or {})}
        return self._workflow("w-agent1-batch", body, "Brief generation failed")
