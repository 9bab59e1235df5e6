# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Callable

from ..api.errors import ValidationError, sanitize_error_message
from ..logging_setup import log_event
from .keys import QueryKey, matches_prefix

MAX_RETRY_DELAY = 30.0

Predicate = Callable[[QueryKey], bool]


@dataclass
class QueryOptions:
    """What a read needs: where it lives in the cache and how to fill it."""
    key: QueryKey
    fetcher: Callable[[], Any]
    stale_time: float = 0.0
    retry: int | None = None
    enabled: bool = True


@dataclass
class QueryState:
    key: QueryKey
    status: str  # idle | loading | error | success
    data: Any = None
    error: Exception | None = None

    @property
    def is_loading(self) -> bool:
        return self.status == "loading"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return sanitize_error_message(getattr(self.error, "message", None) or str(self.error))


class _Entry:
    __slots__ = ("data", "has_data", "error", "updated_at", "invalidated", "task", "generation")

    def __init__(self):
        self.data = None
        self.has_data = False
        self.error = None
        self.updated_at = 0.0
        self.invalidated = False
        self.task: asyncio.Task | None = None
        # Bumped on invalidation; a request started under an older generation never writes back
        self.generation = 0


class QueryCache:
    """In-memory projection of webhook reads, keyed by query key.

    One instance lives for the lifetime of the application (or of a test) and
    is passed to whoever needs it. Reads of the same key share a single
    in-flight request. Mutations never write here; they only invalidate or
    remove entries so the next read goes back to the server.
    """

    def __init__(self, default_retry: int = 2, retry_delay: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self.default_retry = default_retry
        self.retry_delay = retry_delay
        self._clock = clock
        self._entries: dict[QueryKey, _Entry] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # --- reads ---

    async def fetch(self, options: QueryOptions):
        """Return fresh cached data or fetch it; errors propagate to the caller."""
        if not options.enabled:
            raise ValidationError(f"Query {options.key!r} is disabled: missing parameters")
        entry = self._entries.get(options.key)
        if entry is not None and self._is_fresh(entry, options.stale_time):
            return entry.data
        task = self._ensure_fetch(options)
        # Shielded so a caller going away never cancels the shared request
        return await asyncio.shield(task)

    async def observe(self, options: QueryOptions, wait: float | None = None) -> QueryState:
        """Read for a view: never raises, and stops waiting after ``wait`` seconds.

        When the wait runs out the request keeps going and its result lands in
        the cache, but the state handed back to this caller stays ``loading``.
        """
        if not options.enabled:
            return QueryState(options.key, "idle")
        entry = self._entries.get(options.key)
        if entry is not None and self._is_fresh(entry, options.stale_time):
            return QueryState(options.key, "success", data=entry.data)

        task = self._ensure_fetch(options)
        done, _ = await asyncio.wait({task}, timeout=wait)
        if not done:
            previous = entry.data if entry is not None and entry.has_data else None
            return QueryState(options.key, "loading", data=previous)
        if task.cancelled():
            return QueryState(options.key, "error", error=asyncio.CancelledError("Query was cancelled"))
        if task.exception() is not None:
            return QueryState(options.key, "error", error=task.exception())
        return QueryState(options.key, "success", data=task.result())

    def get_data(self, key: QueryKey):
        entry = self._entries.get(key)
        return entry.data if entry is not None and entry.has_data else None

    def is_fetching(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.task is not None and not entry.task.done()

    def is_stale(self, key: QueryKey, stale_time: float) -> bool:
        entry = self._entries.get(key)
        return entry is None or not self._is_fresh(entry, stale_time)

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    # --- invalidation ---

    def invalidate(self, prefix: QueryKey | None = None, predicate: Predicate | None = None) -> int:
        """Mark matching entries stale; they refetch on their next read.

        A request already in flight is detached: it still answers the callers
        waiting on it, but the next read starts a new request and the old
        answer is never written back.
        """
        count = 0
        for key, entry in self._entries.items():
            if self._matches(key, prefix, predicate):
                entry.invalidated = True
                entry.generation += 1
                entry.task = None
                count += 1
        log_event("cache_invalidated", level="debug", cache_key=_describe(prefix), count=count)
        return count

    def remove(self, prefix: QueryKey | None = None, predicate: Predicate | None = None) -> int:
        """Drop matching entries. A request already in flight for one of them
        still answers its own callers but is never written back."""
        doomed = [key for key in self._entries if self._matches(key, prefix, predicate)]
        for key in doomed:
            del self._entries[key]
        log_event("cache_removed", level="debug", cache_key=_describe(prefix), count=len(doomed))
        return len(doomed)

    def clear(self):
        self._entries.clear()

    async def aclose(self):
        self._closed = True
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._entries.clear()

    # --- internals ---

    def _is_fresh(self, entry: _Entry, stale_time: float) -> bool:
        if not entry.has_data or entry.invalidated:
            return False
        return (self._clock() - entry.updated_at) < stale_time

    @staticmethod
    def _matches(key: QueryKey, prefix: QueryKey | None, predicate: Predicate | None) -> bool:
        if prefix is not None and not matches_prefix(key, prefix):
            return False
        if predicate is not None and not predicate(key):
            return False
        return True

    def _ensure_fetch(self, options: QueryOptions) -> asyncio.Task:
        if self._closed:
            raise RuntimeError("QueryCache is closed")
        entry = self._entries.get(options.key)
        if entry is None:
            entry = _Entry()
            self._entries[options.key] = entry
        if entry.task is not None and not entry.task.done():
            return entry.task

        task = asyncio.get_running_loop().create_task(self._run(entry, options, entry.generation))
        entry.task = task
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(entry, t))
        return task

    def _finished(self, entry: _Entry, task: asyncio.Task):
        self._tasks.discard(task)
        if entry.task is task:
            entry.task = None
        # Retrieve the exception so abandoned reads do not warn
        if not task.cancelled():
            task.exception()

    async def _run(self, entry: _Entry, options: QueryOptions, generation: int):
        retries = self.default_retry if options.retry is None else options.retry
        attempt = 0
        while True:
            try:
                data = await _call(options.fetcher)
            except ValidationError as e:
                if entry.generation == generation:
                    entry.error = e
                raise
            except Exception as e:
                if attempt < retries:
                    delay = min(self.retry_delay * (2 ** attempt), MAX_RETRY_DELAY)
                    attempt += 1
                    log_event("query_retry", level="warning", cache_key=_describe(options.key), attempt=attempt, error=str(e))
                    await asyncio.sleep(delay)
                    continue
                if entry.generation == generation:
                    entry.error = e
                log_event("query_failed", level="warning", cache_key=_describe(options.key), attempts=attempt + 1, error=str(e))
                raise

            if entry.generation == generation:
                entry.data = data
                entry.has_data = True
                entry.error = None
                entry.updated_at = self._clock()
                entry.invalidated = False
            return data


async def _call(fetcher: Callable[[], Any]):
    if inspect.iscoroutinefunction(fetcher):
        return await fetcher()
    result = await asyncio.to_thread(fetcher)
    if inspect.isawaitable(result):
        result = await result
    return result


def _describe(key: QueryKey | None) -> str:
    return "*" if key is None else "/".join("null" if k is None else str(k) for k in key)
