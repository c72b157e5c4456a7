"""StructureDefinition parsing and a directory-backed schema source."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from fhirtree.core.errors import SchemaNotFound, TransportError
from fhirtree.core.types import ElementDefinition, ElementType, Schema, StructureKind

logger = logging.getLogger(__name__)

FHIRPATH_SYSTEM_PREFIX = "http://hl7.org/fhirpath/System."

# FHIRPath system types used in snapshots for ids, urls and the like
SYSTEM_TYPES = {
    "String": "string",
    "Boolean": "boolean",
    "Integer": "integer",
    "Decimal": "decimal",
    "Date": "date",
    "DateTime": "dateTime",
    "Time": "time",
}


def _parse_type_code(code: str) -> str:
    """Map FHIRPath system type URLs to the matching FHIR primitive code."""
    if code.startswith(FHIRPATH_SYSTEM_PREFIX):
        system_type = code[len(FHIRPATH_SYSTEM_PREFIX) :]
        return SYSTEM_TYPES.get(system_type, system_type[:1].lower() + system_type[1:])
    return code


def _parse_kind(value: str | None) -> StructureKind:
    """Parse the StructureDefinition kind."""
    if not value:
        raise ValueError("StructureDefinition has no kind")
    return StructureKind(value)


def parse_element_type(data: Mapping[str, Any]) -> ElementType:
    """Parse one entry of ``ElementDefinition.type``."""
    target_profile = data.get("targetProfile")
    return ElementType(
        code=_parse_type_code(data["code"]),
        target_profile=tuple(target_profile) if target_profile is not None else None,
    )


def parse_element(data: Mapping[str, Any]) -> ElementDefinition:
    """Parse one ElementDefinition."""
    path = data["path"]
    return ElementDefinition(
        id=data.get("id", path),
        path=path,
        types=tuple(parse_element_type(t) for t in data.get("type", [])),
        content_reference=data.get("contentReference"),
        max=data.get("max", "1"),
    )


def parse_structure_definition(data: Mapping[str, Any]) -> Schema:
    """Parse a StructureDefinition document.

    Args:
        data: The StructureDefinition as decoded JSON.

    Returns:
        Schema with elements in snapshot order.

    Raises:
        ValueError: If the document is not a usable StructureDefinition.
    """
    if data.get("resourceType") != "StructureDefinition":
        raise ValueError(f"expected a StructureDefinition but got {data.get('resourceType')}")
    if not data.get("name"):
        raise ValueError("StructureDefinition has no name")

    # Fall back to the differential for documents without snapshot
    elements = (data.get("snapshot") or data.get("differential") or {}).get("element", [])

    try:
        parsed = tuple(parse_element(e) for e in elements)
    except KeyError as err:
        raise ValueError(f"invalid element in {data['name']}: missing {err}") from err

    return Schema(
        name=data["name"],
        kind=_parse_kind(data.get("kind")),
        elements=parsed,
        url=data.get("url", ""),
        abstract=bool(data.get("abstract", False)),
    )


def structure_definitions(document: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Return all StructureDefinitions of a document, which is one or a Bundle of them."""
    resource_type = document.get("resourceType")
    if resource_type == "StructureDefinition":
        return [document]
    if resource_type == "Bundle":
        return [
            e["resource"]
            for e in document.get("entry", [])
            if e.get("resource", {}).get("resourceType") == "StructureDefinition"
        ]
    return []


class DirectorySchemaSource:
    """Loads StructureDefinitions from JSON files in a directory.

    Files may contain a single StructureDefinition (``Patient.json``) or a
    Bundle of them (``profiles-types.json``). Definitions are indexed by
    ``id`` and ``name``; parsing happens on first fetch of a type.
    """

    def __init__(self, schema_dir: str | Path) -> None:
        """Initialize directory source.

        Args:
            schema_dir: Directory containing StructureDefinition JSON files.
        """
        self.schema_dir = Path(schema_dir)
        self._documents: dict[str, Mapping[str, Any]] | None = None
        # fetches racing on a cold index wait for one directory scan
        self._index_lock = threading.Lock()

    def _read(self, path: Path) -> Any:
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def _index(self) -> dict[str, Mapping[str, Any]]:
        if self._documents is not None:
            return self._documents
        with self._index_lock:
            documents = self._documents
            if documents is None:
                documents = self._documents = self._scan()
            return documents

    def _scan(self) -> dict[str, Mapping[str, Any]]:
        documents: dict[str, Mapping[str, Any]] = {}
        if self.schema_dir.is_dir():
            for path in sorted(self.schema_dir.glob("*.json")):
                try:
                    data = self._read(path)
                except (OSError, json.JSONDecodeError) as err:
                    raise TransportError(path.stem, f"cannot read {path}: {err}") from err
                if not isinstance(data, dict):
                    continue
                for sd in structure_definitions(data):
                    for key in (sd.get("id"), sd.get("name")):
                        if key:
                            documents.setdefault(key, sd)

        logger.info("Indexed %d StructureDefinitions in %s", len(documents), self.schema_dir)
        return documents

    async def fetch(self, type_name: str) -> Schema:
        """Fetch the schema of a type from the directory.

        Raises:
            SchemaNotFound: If no file defines the type.
            TransportError: If a file is unreadable or the definition is invalid.
        """
        documents = self._documents
        if documents is None:
            documents = await asyncio.to_thread(self._index)

        data = documents.get(type_name)
        if data is None:
            raise SchemaNotFound(type_name, f"not in {self.schema_dir}")

        try:
            return parse_structure_definition(data)
        except ValueError as err:
            raise TransportError(type_name, str(err)) from err

    def list_types(self) -> list[str]:
        """List the names of all StructureDefinitions in the directory."""
        return sorted({sd["name"] for sd in self._index().values() if sd.get("name")})

    def clear_cache(self) -> None:
        """Forget the indexed files so they are read again on next fetch."""
        self._documents = None
