"""Schema loading and caching for fhirtree."""

from fhirtree.schemas.base import SchemaSource
from fhirtree.schemas.cache import SchemaCache
from fhirtree.schemas.http import HttpSchemaSource
from fhirtree.schemas.loader import DirectorySchemaSource, parse_structure_definition

__all__ = [
    "DirectorySchemaSource",
    "HttpSchemaSource",
    "SchemaCache",
    "SchemaSource",
    "parse_structure_definition",
]
