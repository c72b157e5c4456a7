"""Recursive, schema-driven decoding of raw objects into property trees."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from fhirtree.core.errors import MissingResourceType
from fhirtree.core.types import (
    EXTENSION,
    DecodedNode,
    DecodedPrimitive,
    DecodedProperty,
    DecodedValue,
    ElementType,
    Schema,
)
from fhirtree.decoding.resolver import (
    Abstract,
    Concrete,
    ContentReference,
    ElementContext,
    Resolution,
    ResourceSlot,
    TypeResolver,
    raw_value,
)
from fhirtree.schemas.cache import SchemaCache

logger = logging.getLogger(__name__)

STRING_TYPE = ElementType("string")


def resource_type_property(schema: Schema) -> DecodedProperty:
    """The synthetic first property of every resource, named after its schema."""
    return DecodedProperty(
        name="resourceType",
        type=STRING_TYPE,
        value=DecodedPrimitive(type=STRING_TYPE, value=schema.name),
    )


def _extension_list(sidecar: Any) -> list[Any]:
    extensions = raw_value(sidecar, "extension")
    return extensions if isinstance(extensions, list) else []


class PropertyTreeBuilder:
    """Builds DecodedNode trees from schemas and raw objects.

    Schemas of complex and contained types are taken from the cache, which
    fetches them on first use. Sibling properties are decoded concurrently;
    the property order is always the schema's declaration order.
    """

    def __init__(self, cache: SchemaCache, resolver: TypeResolver) -> None:
        self.cache = cache
        self.resolver = resolver

    async def decode(self, schema: Schema, raw: Any) -> DecodedNode:
        """Decode a raw object against a schema.

        Args:
            schema: The schema of the raw object's type.
            raw: The raw object, usually a dict from parsed JSON.

        Returns:
            The decoded node. For resource schemas the first property is a
            synthetic ``resourceType`` carrying the schema name.

        Raises:
            SchemaNotFound: If a schema needed anywhere in the tree is missing.
            TransportError: If fetching a needed schema failed.
            MalformedReference: If a content reference does not resolve.
        """
        context = ElementContext.for_schema(schema.name, schema.elements)
        properties = await self._decode_properties(context, raw)
        if schema.is_resource:
            properties = (resource_type_property(schema), *properties)
        return DecodedNode(type=ElementType(schema.name), properties=properties, object=raw)

    async def decode_resource(self, resource: Any, context: str = "resource") -> DecodedNode:
        """Decode a resource against the schema named by its ``resourceType``."""
        resource_type = raw_value(resource, "resourceType")
        if not isinstance(resource_type, str) or not resource_type:
            raise MissingResourceType(context)
        schema = await self.cache.get(resource_type)
        return await self.decode(schema, resource)

    async def _decode_properties(
        self, context: ElementContext, raw: Any
    ) -> tuple[DecodedProperty, ...]:
        resolutions = [self.resolver.resolve(e, context, raw) for e in context.children]
        properties = await asyncio.gather(
            *(self._decode_property(r, raw) for r in resolutions if r is not None)
        )
        return tuple(properties)

    async def _decode_property(
        self, resolution: Resolution, raw: Mapping[str, Any]
    ) -> DecodedProperty:
        value = raw[resolution.name]

        if isinstance(resolution, (ContentReference, Abstract)):
            decoded: DecodedValue = await self._map(
                value, lambda v: self._decode_inline(resolution.type, resolution.context, v)
            )
            return DecodedProperty(name=resolution.name, type=resolution.type, value=decoded)

        if isinstance(resolution, ResourceSlot):
            decoded = await self._map(value, self._decode_contained)
            return DecodedProperty(name=resolution.name, type=resolution.type, value=decoded)

        return DecodedProperty(
            name=resolution.name,
            type=resolution.type,
            value=await self._decode_concrete(resolution, raw, value),
            human_name=resolution.human_name,
        )

    async def _map(
        self, value: Any, decode: Callable[[Any], Awaitable[DecodedNode]]
    ) -> DecodedValue:
        if isinstance(value, list):
            return tuple(await asyncio.gather(*(decode(v) for v in value)))
        result: DecodedValue = await decode(value)
        return result

    async def _decode_inline(
        self, element_type: ElementType, context: ElementContext, raw: Any
    ) -> DecodedNode:
        properties = await self._decode_properties(context, raw)
        return DecodedNode(type=element_type, properties=properties, object=raw)

    async def _decode_contained(self, raw: Any) -> DecodedNode:
        return await self.decode_resource(raw, "contained resource")

    async def _decode_concrete(
        self, resolution: Concrete, raw: Mapping[str, Any], value: Any
    ) -> DecodedValue:
        if resolution.is_primitive:
            sidecar = raw.get("_" + resolution.name)
            return await self._decode_primitive(resolution.type, value, sidecar)

        schema = await self.cache.get(resolution.type.code)
        return await self._map(value, lambda v: self.decode(schema, v))

    async def _decode_primitive(
        self, element_type: ElementType, value: Any, sidecar: Any
    ) -> DecodedPrimitive | tuple[DecodedPrimitive, ...]:
        if isinstance(value, list):
            # the sidecar of a primitive list is a parallel list
            sidecars = sidecar if isinstance(sidecar, list) else []
            sidecars = sidecars + [None] * (len(value) - len(sidecars))
            primitives = await asyncio.gather(
                *(self._primitive(element_type, v, s) for v, s in zip(value, sidecars))
            )
            return tuple(primitives)
        return await self._primitive(element_type, value, sidecar)

    async def _primitive(
        self, element_type: ElementType, value: Any, sidecar: Any
    ) -> DecodedPrimitive:
        extensions = _extension_list(sidecar)
        if not extensions:
            return DecodedPrimitive(type=element_type, value=value)

        schema = await self.cache.get(EXTENSION)
        decoded = await asyncio.gather(*(self.decode(schema, e) for e in extensions))
        return DecodedPrimitive(type=element_type, value=value, extensions=tuple(decoded))
