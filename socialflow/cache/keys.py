# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

"""Cache key factory.

Every key is a tuple whose first element names the data class, so prefix
matching (``("content-items",)``) reaches every variant of a query. Missing
slugs map to ``DISABLED`` and missing options to ``None``; an empty string is
kept as-is, so ``None``, ``""`` and a real value never share a slot.
"""

from ..schemas import ContentItemsOptions

DISABLED = "__disabled__"

QueryKey = tuple


def _slug(value: str | None):
    return DISABLED if value is None else value


class _Clients:
    all: QueryKey = ("clients",)
    archived: QueryKey = ("archived-clients",)

    @staticmethod
    def detail(slug: str) -> QueryKey:
        return ("clients", slug)


class _Batches:
    @staticmethod
    def by_client(client: str) -> QueryKey:
        return ("batches", client)

    @staticmethod
    def status(client: str, batch: str) -> QueryKey:
        return ("batches", client, batch, "status")


class _ContentItems:
    all: QueryKey = ("content-items",)

    @staticmethod
    def by_batch(client: str | None = None, batch: str | None = None, options: ContentItemsOptions | None = None) -> QueryKey:
        status = options.status.value if options is not None and options.status is not None else None
        return (
            "content-items",
            "batch",
            _slug(client),
            _slug(batch),
            status,
            options.limit if options is not None else None,
            options.offset if options is not None else None,
        )

    @staticmethod
    def detail(item_id) -> QueryKey:
        return ("content-items", "detail", item_id)

    @staticmethod
    def conversations(client: str, batch: str, content_id) -> QueryKey:
        return ("content-items", "conversations", client, batch, content_id)


class _Instructions:
    all: QueryKey = ("agent-instructions",)
    system: QueryKey = ("agent-instructions", "system")

    @staticmethod
    def by_client(client: str) -> QueryKey:
        return ("agent-instructions", "client", client)

    @staticmethod
    def by_batch(client: str, batch: str) -> QueryKey:
        return ("agent-instructions", "batch", client, batch)


class _Agents:
    instructions = _Instructions
    settings: QueryKey = ("agent-settings",)


class QueryKeys:
    clients = _Clients
    batches = _Batches
    content_items = _ContentItems
    accounts: QueryKey = ("accounts",)
    settings: QueryKey = ("settings",)
    stats: QueryKey = ("stats",)
    jobs: QueryKey = ("jobs",)
    agents = _Agents

    @staticmethod
    def generation_progress(client: str, batch: str) -> QueryKey:
        return ("generation-progress", client, batch)

    @staticmethod
    def ingest_progress(client: str, batch: str) -> QueryKey:
        return ("ingest-progress", client, batch)


query_keys = QueryKeys


def matches_prefix(key: QueryKey, prefix: QueryKey) -> bool:
    return len(key) >= len(prefix) and key[:len(prefix)] == prefix
