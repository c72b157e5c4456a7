"""Resolution of all schemas a type transitively depends on."""

from __future__ import annotations

import asyncio
import logging

from fhirtree.core.types import ABSTRACT_TYPES, RESOURCE, Schema
from fhirtree.schemas.cache import SchemaCache

logger = logging.getLogger(__name__)

# Types whose schema is never fetched for an element declaring them
NON_FETCHED_TYPES = ABSTRACT_TYPES | {RESOURCE}


def referenced_types(schema: Schema) -> list[str]:
    """Distinct complex and resource type codes used by a schema's elements.

    Primitive types and the pseudo-types ``Element``, ``BackboneElement`` and
    ``Resource`` are left out. The result keeps first-use order.
    """
    seen: dict[str, None] = {}
    for element in schema.elements:
        for element_type in element.types:
            if element_type.is_primitive or element_type.code in NON_FETCHED_TYPES:
                continue
            seen.setdefault(element_type.code, None)
    return list(seen)


class TransitiveSchemaFetcher:
    """Loads a schema together with every schema it references, recursively."""

    def __init__(self, cache: SchemaCache) -> None:
        self.cache = cache

    async def resolve_closure(self, root_type: str) -> dict[str, Schema]:
        """Resolve the schemas of a type and all types reachable from it.

        Args:
            root_type: Name of the type to start from.

        Returns:
            Schemas by type name, the root type first.

        Raises:
            SchemaNotFound: If any schema in the closure is missing.
            TransportError: If fetching any schema failed.
        """
        closure: dict[str, Schema] = {}
        await self._resolve(root_type, {root_type}, closure)
        logger.debug("Closure of %s has %d types", root_type, len(closure))
        return closure

    async def _resolve(self, type_name: str, known: set[str], closure: dict[str, Schema]) -> None:
        schema = await self.cache.get(type_name)
        closure[type_name] = schema

        new_types = [t for t in referenced_types(schema) if t not in known]
        # claim types before awaiting so concurrent branches skip them
        known.update(new_types)
        await asyncio.gather(*(self._resolve(t, known, closure) for t in new_types))
