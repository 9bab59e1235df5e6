# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import asyncio
from typing import Any

from ..api.client import WebhookClient, split_batch_scope
from ..logging_setup import log_event
from ..schemas import CreateClientInput, InstructionScope, ScheduleUpdateItem
from .keys import QueryKey, query_keys
from .store import QueryCache


def is_content_items_key(key: QueryKey) -> bool:
    return key[0] == "content-items"


def is_batch_status_key(key: QueryKey) -> bool:
    return len(key) == 4 and key[0] == "batches" and key[3] == "status"


class Mutations:
    """Writes against the webhook, each followed by its cache invalidation.

    A write runs once: it is never retried, and nothing is written into the
    cache. When the request fails the error propagates and, except for the
    account sync, the cache is left untouched.
    """

    def __init__(self, client: WebhookClient, cache: QueryCache):
        self.client = client
        self.cache = cache

    async def _call(self, name: str, fn, *args, **kwargs):
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as e:
            log_event("mutation_failed", level="warning", mutation=name, error=str(e))
            raise
        log_event("mutation_succeeded", mutation=name)
        return result

    # --- clients ---

    async def create_client(self, payload: CreateClientInput):
        result = await self._call("create_client", self.client.create_client, payload)
        self.cache.invalidate(query_keys.clients.all)
        return result

    async def delete_client(self, slug: str):
        result = await self._call("delete_client", self.client.delete_client, slug)
        self.cache.invalidate(query_keys.clients.all)
        self.cache.invalidate(query_keys.stats)
        self.cache.remove(query_keys.clients.detail(slug))
        self.cache.remove(query_keys.batches.by_client(slug))
        return result

    async def delete_all_clients(self):
        result = await self._call("delete_all_clients", self.client.delete_all_clients)
        self.cache.invalidate(query_keys.clients.all)
        self.cache.invalidate(query_keys.clients.archived)
        self.cache.invalidate(query_keys.stats)
        return result

    async def archive_client(self, slug: str):
        result = await self._call("archive_client", self.client.archive_client, slug)
        self.cache.invalidate(query_keys.clients.all)
        self.cache.invalidate(query_keys.clients.archived)
        return result

    async def restore_client(self, client_id: int):
        result = await self._call("restore_client", self.client.restore_client, client_id)
        self.cache.invalidate(query_keys.clients.all)
        self.cache.invalidate(query_keys.clients.archived)
        return result

    async def delete_archived_client(self, client_id: int):
        result = await self._call("delete_archived_client", self.client.delete_archived_client, client_id)
        self.cache.invalidate(query_keys.clients.archived)
        return result

    # --- accounts ---

    async def sync_accounts(self):
        # Refresh the account list whether or not the sync succeeded
        try:
            return await self._call("sync_accounts", self.client.sync_accounts)
        finally:
            self.cache.invalidate(query_keys.accounts)

    # --- batch workflows ---

    def _after_workflow(self, client: str, batch: str):
        self.cache.invalidate(query_keys.batches.by_client(client))
        self.cache.invalidate(query_keys.batches.status(client, batch))
        self.cache.invalidate(predicate=is_content_items_key)
        self.cache.invalidate(query_keys.stats)

    async def ingest(self, client: str, batch: str):
        result = await self._call("ingest", self.client.trigger_ingest, client, batch)
        self._after_workflow(client, batch)
        return result

    async def generate(self, client: str, batch: str):
        result = await self._call("generate", self.client.trigger_generate, client, batch)
        self._after_workflow(client, batch)
        return result

    async def schedule(self, client: str, batch: str):
        result = await self._call("schedule", self.client.trigger_schedule, client, batch)
        self._after_workflow(client, batch)
        return result

    async def reset_batch(self, client: str, batch: str):
        result = await self._call("reset_batch", self.client.reset_batch, client, batch)
        self._after_workflow(client, batch)
        return result

    async def bulk_update_schedule(self, client: str, batch: str, items: list[ScheduleUpdateItem], timezone: str = "Europe/Berlin"):
        result = await self._call("bulk_update_schedule", self.client.bulk_update_schedule, client, batch, items, timezone)
        self.cache.invalidate(query_keys.content_items.all)
        self.cache.invalidate(query_keys.batches.status(client, batch))
        return result

    # --- item review ---

    def _after_review(self):
        self.cache.invalidate(query_keys.content_items.all)
        self.cache.invalidate(query_keys.stats)
        self.cache.invalidate(predicate=is_batch_status_key)

    async def approve_item(self, item_id):
        result = await self._call("approve_item", self.client.approve_item, item_id)
        self._after_review()
        return result

    async def reject_item(self, item_id, reason: str | None = None):
        result = await self._call("reject_item", self.client.reject_item, item_id, reason)
        self._after_review()
        return result

    async def approve_batch_items(self, ids: list):
        result = await self._call("approve_batch_items", self.client.approve_batch_items, ids)
        self._after_review()
        return result

    async def update_item_caption(self, item_id, **captions):
        result = await self._call("update_item_caption", self.client.update_item_caption, item_id, **captions)
        self.cache.invalidate(query_keys.content_items.all)
        return result

    async def update_item_platforms(self, item_id, platforms: str):
        result = await self._call("update_item_platforms", self.client.update_item_platforms, item_id, platforms)
        self.cache.invalidate(query_keys.content_items.all)
        return result

    # --- settings / agents ---

    async def update_settings(self, updates: dict[str, Any]):
        result = await self._call("update_settings", self.client.update_settings, updates)
        self.cache.invalidate(query_keys.settings)
        return result

    async def update_agent_instruction(
        self, agent_type: str, scope: InstructionScope, instruction_key: str, instruction_value: str, scope_id=None
    ):
        result = await self._call(
            "update_agent_instruction", self.client.update_agent_instruction,
            agent_type, scope, instruction_key, instruction_value, scope_id,
        )
        if scope == InstructionScope.SYSTEM:
            self.cache.invalidate(query_keys.agents.instructions.system)
        elif scope == InstructionScope.CLIENT:
            self.cache.invalidate(query_keys.agents.instructions.by_client(str(scope_id)))
        elif scope == InstructionScope.BATCH:
            client, batch = split_batch_scope(scope_id)
            self.cache.invalidate(query_keys.agents.instructions.by_batch(client, batch))
        self.cache.invalidate(query_keys.agents.instructions.all)
        return result

    async def update_agent_settings(self, agent_type: str, model: str | None = None, master_prompt: str | None = None):
        result = await self._call("update_agent_settings", self.client.update_agent_settings, agent_type, model, master_prompt)
        self.cache.invalidate(query_keys.agents.settings)
        return result

    async def generate_client_config(self, slug: str, onboarding: dict):
        result = await self._call("generate_client_config", self.client.generate_client_config, slug, onboarding)
        self.cache.invalidate(query_keys.clients.all)
        self.cache.invalidate(query_keys.clients.detail(slug))
        return result

    async def generate_batch_brief(self, client: str, batch: str, brief: dict | None = None):
        result = await self._call("generate_batch_brief", self.client.generate_batch_brief, client, batch, brief)
        self.cache.invalidate(query_keys.batches.by_client(client))
        return result
