# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

from ..api.client import WebhookClient
from ..schemas import ContentItemsOptions, InstructionScope
from .keys import query_keys
from .store import QueryOptions

MINUTE = 60.0

# Seconds a cached result is served without revalidation, per data class
STALE_TIMES = {
    "settings": 30 * MINUTE,
    "clients": 10 * MINUTE,
    "accounts": 5 * MINUTE,
    "batch_status": 2 * MINUTE,
    "content_items": 1 * MINUTE,
    "progress": 0.0,
    "stats": 2 * MINUTE,
    "batches": 3 * MINUTE,
    "agents": 5 * MINUTE,
    "jobs": 5.0,
}


class Queries:
    """Factory of ``QueryOptions``, one method per read the dashboard makes."""

    def __init__(self, client: WebhookClient):
        self.client = client

    # --- clients ---

    def clients(self) -> QueryOptions:
        return QueryOptions(query_keys.clients.all, self.client.get_clients, STALE_TIMES["clients"])

    def client_detail(self, slug: str | None) -> QueryOptions:
        return QueryOptions(
            query_keys.clients.detail(slug),
            lambda: self.client.get_client(slug),
            STALE_TIMES["clients"],
            enabled=bool(slug),
        )

    def archived_clients(self) -> QueryOptions:
        return QueryOptions(query_keys.clients.archived, self.client.get_archived_clients, STALE_TIMES["clients"])

    # --- batches ---

    def batches(self, client: str | None) -> QueryOptions:
        return QueryOptions(
            query_keys.batches.by_client(client),
            lambda: self.client.get_batches(client),
            STALE_TIMES["batches"],
            enabled=bool(client),
        )

    def batch_status(self, client: str | None, batch: str | None) -> QueryOptions:
        return QueryOptions(
            query_keys.batches.status(client, batch),
            lambda: self.client.get_batch_status(client, batch),
            STALE_TIMES["batch_status"],
            enabled=bool(client) and bool(batch),
        )

    def generation_progress(self, client: str | None, batch: str | None, active: bool = True) -> QueryOptions:
        return QueryOptions(
            query_keys.generation_progress(client, batch),
            lambda: self.client.get_generation_progress(client, batch),
            STALE_TIMES["progress"],
            retry=0,
            enabled=bool(client) and bool(batch) and active,
        )

    def ingest_progress(self, client: str | None, batch: str | None, active: bool = True) -> QueryOptions:
        return QueryOptions(
            query_keys.ingest_progress(client, batch),
            lambda: self.client.get_ingest_progress(client, batch),
            STALE_TIMES["progress"],
            retry=0,
            enabled=bool(client) and bool(batch) and active,
        )

    # --- content items ---

    def content_items(
        self, client: str | None, batch: str | None, options: ContentItemsOptions | None = None
    ) -> QueryOptions:
        return QueryOptions(
            query_keys.content_items.by_batch(client, batch, options),
            lambda: self.client.get_content_items(client, batch, options),
            STALE_TIMES["content_items"],
            enabled=bool(client) and bool(batch),
        )

    def content_item(self, item_id) -> QueryOptions:
        return QueryOptions(
            query_keys.content_items.detail(item_id),
            lambda: self.client.get_content_item(item_id),
            STALE_TIMES["content_items"],
            enabled=item_id is not None,
        )

    def item_conversations(self, client: str, batch: str, content_id) -> QueryOptions:
        return QueryOptions(
            query_keys.content_items.conversations(client, batch, content_id),
            lambda: self.client.get_item_conversations(client, batch, content_id),
            STALE_TIMES["content_items"],
            enabled=bool(client) and bool(batch) and content_id is not None,
        )

    # --- global ---

    def accounts(self) -> QueryOptions:
        return QueryOptions(query_keys.accounts, self.client.get_accounts, STALE_TIMES["accounts"])

    def settings(self) -> QueryOptions:
        return QueryOptions(query_keys.settings, self.client.get_settings, STALE_TIMES["settings"])

    def stats(self) -> QueryOptions:
        return QueryOptions(query_keys.stats, self.client.get_stats, STALE_TIMES["stats"])

    def jobs(self) -> QueryOptions:
        return QueryOptions(query_keys.jobs, self.client.get_jobs, STALE_TIMES["jobs"])

    # --- agents ---

    def system_instructions(self) -> QueryOptions:
        return QueryOptions(
            query_keys.agents.instructions.system,
            lambda: self.client.get_agent_instructions(InstructionScope.SYSTEM),
            STALE_TIMES["agents"],
        )

    def client_instructions(self, client: str | None) -> QueryOptions:
        return QueryOptions(
            query_keys.agents.instructions.by_client(client),
            lambda: self.client.get_agent_instructions(InstructionScope.CLIENT, client),
            STALE_TIMES["agents"],
            enabled=bool(client),
        )

    def batch_instructions(self, client: str | None, batch: str | None) -> QueryOptions:
        return QueryOptions(
            query_keys.agents.instructions.by_batch(client, batch),
            lambda: self.client.get_agent_instructions(InstructionScope.BATCH, f"{client}/{batch}"),
            STALE_TIMES["agents"],
            enabled=bool(client) and bool(batch),
        )

    def agent_settings(self) -> QueryOptions:
        return QueryOptions(query_keys.agents.settings, self.client.get_agent_settings, STALE_TIMES["agents"])
