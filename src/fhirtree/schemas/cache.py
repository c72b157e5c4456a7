"""Memoizing, single-flight schema cache."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from fhirtree.core.types import Schema
from fhirtree.schemas.base import SchemaSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CacheEntry:
    schema: Schema
    loaded_at: float


class SchemaCache:
    """Caches schemas by type name and deduplicates concurrent fetches.

    The first miss for a type starts a load task and registers it before
    yielding to the event loop, so concurrent callers for the same type await
    that one task. Resolved schemas are kept as plain values, which allows one
    cache to outlive the event loop that filled it.

    Failed loads are not cached: every caller waiting at that time gets the
    error and the next ``get`` starts a new fetch.
    """

    def __init__(
        self,
        source: SchemaSource,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize schema cache.

        Args:
            source: Where schemas are fetched from.
            ttl: Seconds a resolved schema stays valid, None to keep it for the
                lifetime of the cache.
            clock: Monotonic time function, replaceable in tests.
        """
        self.source = source
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._pending: dict[str, asyncio.Task[Schema]] = {}

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        return self.ttl is None or self._clock() - entry.loaded_at < self.ttl

    async def get(self, type_name: str) -> Schema:
        """Return the schema of a type, fetching it on first use.

        Args:
            type_name: Name of the type (e.g., 'Patient').

        Returns:
            The cached or freshly fetched schema.

        Raises:
            SchemaNotFound: If the source has no definition for the type.
            TransportError: If fetching failed.
        """
        entry = self._entries.get(type_name)
        if entry is not None:
            if self._is_fresh(entry):
                return entry.schema
            logger.debug("Schema %s expired", type_name)
            del self._entries[type_name]

        task = self._pending.get(type_name)
        if task is None or task.get_loop() is not asyncio.get_running_loop():
            logger.debug("Schema cache miss for %s", type_name)
            task = asyncio.ensure_future(self._load(type_name))
            self._pending[type_name] = task
        else:
            logger.debug("Joining pending fetch of %s", type_name)

        # a cancelled caller must not cancel the fetch other callers wait for
        return await asyncio.shield(task)

    async def _load(self, type_name: str) -> Schema:
        task = asyncio.current_task()
        try:
            schema = await self.source.fetch(type_name)
        except Exception as err:
            logger.debug("Fetching schema %s failed: %s", type_name, err)
            raise
        finally:
            # a fetch dropped by clear or invalidate, or replaced for another
            # event loop, must not touch the registration of its successor
            registered = self._pending.get(type_name) is task
            if registered:
                del self._pending[type_name]

        if registered:
            self._entries[type_name] = _CacheEntry(schema=schema, loaded_at=self._clock())
        else:
            logger.debug("Discarding superseded fetch of %s", type_name)
        return schema

    def invalidate(self, type_name: str) -> None:
        """Drop the cached schema of one type.

        A fetch of the type still in flight completes for its current callers
        but is not cached; the next ``get`` fetches again.
        """
        self._entries.pop(type_name, None)
        self._pending.pop(type_name, None)

    def clear(self) -> None:
        """Drop all cached schemas and forget fetches still in flight."""
        self._entries.clear()
        self._pending.clear()

    def cached_types(self) -> list[str]:
        """Names of all types with a resolved, unexpired schema."""
        return [name for name, entry in self._entries.items() if self._is_fresh(entry)]

    def __contains__(self, type_name: object) -> bool:
        entry = self._entries.get(type_name)  # type: ignore[arg-type]
        return entry is not None and self._is_fresh(entry)

    def __len__(self) -> int:
        return len(self.cached_types())
