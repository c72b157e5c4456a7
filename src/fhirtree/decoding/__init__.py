"""Schema-driven decoding of FHIR resources into property trees."""

from fhirtree.decoding.builder import PropertyTreeBuilder
from fhirtree.decoding.closure import TransitiveSchemaFetcher
from fhirtree.decoding.decoder import Decoder
from fhirtree.decoding.index import SchemaElementIndex
from fhirtree.decoding.resolver import ElementKind, TypeResolver

__all__ = [
    "Decoder",
    "ElementKind",
    "PropertyTreeBuilder",
    "SchemaElementIndex",
    "TransitiveSchemaFetcher",
    "TypeResolver",
]
