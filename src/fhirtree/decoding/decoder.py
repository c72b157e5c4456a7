"""Entry point wiring schema cache, resolver and builder together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fhirtree.config import DecoderConfig
from fhirtree.core.errors import MissingResourceType
from fhirtree.core.types import DecodedBundle, DecodedBundleEntry, DecodedNode, Schema
from fhirtree.decoding.builder import PropertyTreeBuilder
from fhirtree.decoding.closure import TransitiveSchemaFetcher
from fhirtree.decoding.index import SchemaElementIndex
from fhirtree.decoding.resolver import TypeResolver, raw_value
from fhirtree.schemas.base import SchemaSource
from fhirtree.schemas.cache import SchemaCache

logger = logging.getLogger(__name__)


class Decoder:
    """Decodes FHIR resources into ordered, typed property trees.

    A decoder owns an element index and uses a schema cache that may be
    shared with other decoders, e.g. one cache per process and one decoder
    per request.
    """

    def __init__(
        self,
        source: SchemaSource | None = None,
        config: DecoderConfig | None = None,
        cache: SchemaCache | None = None,
    ) -> None:
        """Initialize decoder.

        Args:
            source: Where schemas come from. Defaults to the source of ``config``.
            config: Decoder options.
            cache: An existing cache to share. Overrides ``source``.
        """
        self.config = config or DecoderConfig()
        if cache is None:
            cache = SchemaCache(source or self.config.create_source(), ttl=self.config.cache_ttl)
        self.cache = cache
        self.index = SchemaElementIndex()
        self.resolver = TypeResolver(self.index, self.config.on_missing_reference)
        self.builder = PropertyTreeBuilder(self.cache, self.resolver)
        self.fetcher = TransitiveSchemaFetcher(self.cache)

    async def schema(self, type_name: str) -> Schema:
        return await self.cache.get(type_name)

    async def decode(self, type_name: str, raw: Any) -> DecodedNode:
        """Decode a raw object against the schema of a named type."""
        schema = await self.cache.get(type_name)
        return await self.builder.decode(schema, raw)

    async def decode_resource(self, resource: Any) -> DecodedNode:
        """Decode a resource against the schema named by its ``resourceType``.

        Args:
            resource: The resource as parsed JSON.

        Returns:
            The decoded resource.

        Raises:
            MissingResourceType: If the resource has no ``resourceType``.
            SchemaNotFound: If a needed schema is missing.
            TransportError: If fetching a needed schema failed.
        """
        if not self.config.prefetch_closure:
            return await self.builder.decode_resource(resource)

        resource_type = raw_value(resource, "resourceType")
        if not isinstance(resource_type, str) or not resource_type:
            raise MissingResourceType()

        closure = await self.fetcher.resolve_closure(resource_type)
        logger.debug(
            "Decoding %s/%s with %d schemas", resource_type, resource.get("id"), len(closure)
        )
        return await self.builder.decode(closure[resource_type], resource)

    async def decode_bundle(self, bundle: Any) -> DecodedBundle:
        """Decode the resources of all entries of a Bundle.

        Entries without a resource are kept without a decoded node.
        """
        entries = raw_value(bundle, "entry")
        if not isinstance(entries, list):
            return DecodedBundle(bundle=bundle)

        async def decode_entry(entry: Any) -> DecodedBundleEntry:
            resource = raw_value(entry, "resource")
            if resource is None:
                return DecodedBundleEntry(entry=entry)
            return DecodedBundleEntry(entry=entry, node=await self.decode_resource(resource))

        decoded = await asyncio.gather(*(decode_entry(e) for e in entries))
        return DecodedBundle(bundle=bundle, entries=tuple(decoded))

    async def closure(self, type_name: str) -> dict[str, Schema]:
        """All schemas a type transitively depends on, by type name."""
        return await self.fetcher.resolve_closure(type_name)

    def reset(self) -> None:
        """Drop cached schemas and memoized element slices."""
        self.cache.clear()
        self.index.clear()
