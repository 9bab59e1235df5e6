# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Accounts whose token expires within this many days are flagged
EXPIRY_WARNING_DAYS = 7


class ContentStatus(str, Enum):
    PENDING = "PENDING"
    NEEDS_AI = "NEEDS_AI"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    APPROVED = "APPROVED"
    SCHEDULED = "SCHEDULED"
    BLOCKED = "BLOCKED"
    FAILED = "FAILED"
    # UI only, never persisted by the workflow engine
    REJECTED = "REJECTED"
    DELETED = "DELETED"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    EXPIRED = "expired"


class InstructionScope(str, Enum):
    SYSTEM = "system"
    CLIENT = "client"
    BATCH = "batch"


class _Row(BaseModel):
    # Rows come from an external engine that adds columns over time
    model_config = ConfigDict(extra="allow", from_attributes=True)


# --- Clients ---

class AccountLink(_Row):
    late_account_id: str
    username: str


class ClientAccounts(_Row):
    instagram: AccountLink | None = None
    tiktok: AccountLink | None = None


class ClientSchedule(_Row):
    feed_time: str | None = None
    story_time: str | None = None
    photo_time: str | None = None
    video_time: str | None = None


class Client(_Row):
    id: int
    slug: str
    name: str
    type: str
    language: str
    timezone: str
    is_active: bool = True
    accounts: ClientAccounts | None = None
    schedule: ClientSchedule | None = None
    brand_voice: str | None = None
    brand_target_audience: str | None = None
    brand_description: str | None = None
    hashtags: list[str] | None = None
    video_ai_captions: bool | None = None
    photo_ai_captions: bool | None = None
    late_profile_id: str | None = None


class CreateClientInput(BaseModel):
    name: str
    slug: str
    type: str
    language: str
    timezone: str = "Europe/Berlin"
    late_profile_id: str | None = None
    instagram_account_id: str | None = None
    tiktok_account_id: str | None = None
    photo_time: str | None = None
    video_time: str | None = None
    story_time: str | None = None
    brand_voice: str | None = None
    brand_target_audience: str | None = None
    brand_description: str | None = None
    hashtags: list[str] | None = None
    video_ai_captions: bool | None = None
    photo_ai_captions: bool | None = None

    @field_validator("name", "slug", "type", "language")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"unknown timezone: {value}")
        return value


class ArchivedClient(_Row):
    id: int
    slug: str
    name: str
    archived_at: str | None = None


# --- Batches ---

class Batch(_Row):
    name: str
    slug: str
    has_ready: bool = False
    has_config: bool = False
    photo_count: int = 0
    video_count: int = 0
    ingested: bool = False
    item_count: int = 0
    needs_ai: int = 0
    needs_review: int = 0
    approved: int = 0
    scheduled: int = 0
    id: int | None = None
    status: str | None = None


class BatchStatusCounts(_Row):
    total: int = 0
    pending: int = 0
    needs_ai: int = 0
    needs_review: int = 0
    approved: int = 0
    scheduled: int = 0
    failed: int = 0


class BatchStatus(_Row):
    client: str
    batch: str
    counts: BatchStatusCounts


class GenerationProgress(_Row):
    current: int = 0
    total: int = 0
    stage: str | None = None
    round: int | None = None
    content_id: str | None = None
    started_at: str | None = None
    is_running: bool = False


class IngestProgress(_Row):
    current: int = 0
    total: int = 0
    stage: str | None = None
    file_name: str | None = None
    started_at: str | None = None
    is_running: bool = False


# --- Content items ---

class ContentItem(_Row):
    id: int | None = None
    content_id: str
    client_slug: str | None = None
    batch_name: str | None = None
    media_type: str | None = None
    file: str | None = None
    media_url: str | None = None
    preview_url: str | None = None
    image_description: str | None = None
    caption_ig: str | None = None
    caption_tt: str | None = None
    caption_override: str | None = None
    hashtags_final: str | None = None
    scheduled_date: str | None = None
    scheduled_time: str | None = None
    slot: str | None = None
    schedule_at: str | None = None
    platforms: str | None = None
    status: ContentStatus = ContentStatus.PENDING
    error_message: str | None = None
    late_post_id: str | None = None


class Pagination(_Row):
    total: int = 0
    limit: int = 0
    offset: int = 0
    has_more: bool = False


class ContentItemsPage(_Row):
    items: list[ContentItem] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class ContentItemsOptions(BaseModel):
    status: ContentStatus | None = None
    limit: int | None = None
    offset: int | None = None


class BulkApproveResult(_Row):
    approved: int = 0
    failed: int = 0


class ScheduleUpdateItem(BaseModel):
    id: int
    scheduled_date: str
    scheduled_time: str
    slot: str = "feed"

    @field_validator("slot")
    @classmethod
    def _known_slot(cls, value: str) -> str:
        if value not in ("feed", "story"):
            raise ValueError("slot must be 'feed' or 'story'")
        return value


class BulkScheduleResult(_Row):
    updated: int = 0
    total: int = 0


class AIConversation(_Row):
    id: int | None = None
    session_id: str | None = None
    agent_type: str | None = None
    agent_model: str | None = None
    round_number: int | None = None
    role: str | None = None
    prompt: str | None = None
    response: str | None = None
    duration_ms: int | None = None
    status: str | None = None
    error_message: str | None = None
    created_at: str | None = None


# --- Accounts ---

class LateProfile(_Row):
    id: str
    name: str
    color: str | None = None
    is_default: bool = False


class LateAccount(_Row):
    id: str
    platform: str
    username: str
    display_name: str | None = None
    is_active: bool = True
    token_expires_at: datetime | None = None
    late_profile_id: str | None = None
    late_profile_name: str | None = None
    health: HealthStatus | None = None
    days_until_expiry: int | None = None

    @model_validator(mode="after")
    def _derive_health(self):
        # The sync workflow normally classifies accounts; fall back to the expiry date
        if self.days_until_expiry is None and self.token_expires_at is not None:
            self.days_until_expiry = days_until(self.token_expires_at)
        if self.health is None:
            self.health = classify_health(self.days_until_expiry)
        return self


class AccountsData(_Row):
    accounts: list[LateAccount] = Field(default_factory=list)
    profiles: list[LateProfile] = Field(default_factory=list)
    synced_at: str | None = None


def days_until(expires_at: datetime, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return (expires_at - now).days


def classify_health(days_until_expiry: int | None) -> HealthStatus:
    if days_until_expiry is None:
        return HealthStatus.HEALTHY
    if days_until_expiry < 0:
        return HealthStatus.EXPIRED
    if days_until_expiry <= EXPIRY_WARNING_DAYS:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


# --- Dashboard / settings / agents ---

class ContentPipelineCounts(_Row):
    total: int = 0
    pending: int = 0
    needs_ai: int = 0
    needs_review: int = 0
    approved: int = 0
    scheduled: int = 0
    failed: int = 0


class DashboardStats(_Row):
    clients: int = 0
    batches: int = 0
    content_items: ContentPipelineCounts = Field(default_factory=ContentPipelineCounts)
    accounts: int = 0


class AppSettings(_Row):
    cloudflare_tunnel_url: str | None = None


class AgentInstruction(_Row):
    id: int | None = None
    agent_type: str
    scope: InstructionScope
    scope_id: int | str | None = None
    instruction_key: str
    instruction_value: str
    is_active: bool = True


class AgentSettings(_Row):
    agents: dict[str, Any] = Field(default_factory=dict)


class Job(_Row):
    id: str | int
    workflow: str | None = None
    status: str | None = None
    started_at: str | None = None
    finished_at: str | None = None


class WorkflowResult(_Row):
    success: bool = True
    message: str | None = None
    workflow: str | None = None


class ActionResult(_Row):
    success: bool = True
    message: str | None = None
    deleted: int | None = None
