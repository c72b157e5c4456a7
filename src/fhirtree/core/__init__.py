"""Core module for fhirtree."""

from fhirtree.core.errors import (
    DecodeError,
    MalformedReference,
    MissingResourceType,
    SchemaNotFound,
    TransportError,
)
from fhirtree.core.types import (
    DecodedBundle,
    DecodedBundleEntry,
    DecodedNode,
    DecodedPrimitive,
    DecodedProperty,
    ElementDefinition,
    ElementType,
    ReferencePolicy,
    Schema,
    StructureKind,
)

__all__ = [
    "DecodeError",
    "DecodedBundle",
    "DecodedBundleEntry",
    "DecodedNode",
    "DecodedPrimitive",
    "DecodedProperty",
    "ElementDefinition",
    "ElementType",
    "MalformedReference",
    "MissingResourceType",
    "ReferencePolicy",
    "Schema",
    "SchemaNotFound",
    "StructureKind",
    "TransportError",
]
