"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from pathlib import Path
from typing import Any

import pytest

from fhirtree.core.errors import SchemaNotFound, TransportError
from fhirtree.core.types import Schema
from fhirtree.decoding.decoder import Decoder
from fhirtree.schemas.loader import parse_structure_definition

SYSTEM_STRING = "http://hl7.org/fhirpath/System.String"
CANONICAL = "http://hl7.org/fhir/StructureDefinition/"


def element(
    path: str,
    *types: str | dict[str, Any],
    max: str = "1",
    content_reference: str | None = None,
) -> dict[str, Any]:
    """Build an ElementDefinition. Types are codes or full type dicts."""
    data: dict[str, Any] = {"id": path, "path": path, "max": max}
    if types:
        data["type"] = [{"code": t} if isinstance(t, str) else t for t in types]
    if content_reference is not None:
        data["contentReference"] = content_reference
    return data


def structure_definition(name: str, kind: str, *elements: dict[str, Any]) -> dict[str, Any]:
    return {
        "resourceType": "StructureDefinition",
        "id": name,
        "url": CANONICAL + name,
        "name": name,
        "kind": kind,
        "abstract": False,
        "type": name,
        "snapshot": {"element": [element(name), *elements]},
    }


def reference_to(*targets: str) -> dict[str, Any]:
    return {"code": "Reference", "targetProfile": [CANONICAL + t for t in targets]}


STRUCTURE_DEFINITIONS: dict[str, dict[str, Any]] = {
    sd["name"]: sd
    for sd in [
        structure_definition(
            "Patient",
            "resource",
            element("Patient.id", SYSTEM_STRING),
            element("Patient.meta", "Meta"),
            element("Patient.contained", "Resource", max="*"),
            element("Patient.extension", "Extension", max="*"),
            element("Patient.identifier", "Identifier", max="*"),
            element("Patient.active", "boolean"),
            element("Patient.name", "HumanName", max="*"),
            element("Patient.gender", "code"),
            element("Patient.birthDate", "date"),
            element("Patient.deceased[x]", "boolean", "dateTime"),
            element("Patient.contact", "BackboneElement", max="*"),
            element("Patient.contact.name", "HumanName"),
            element("Patient.contact.gender", "code"),
            element("Patient.managingOrganization", reference_to("Organization")),
        ),
        structure_definition(
            "Observation",
            "resource",
            element("Observation.id", SYSTEM_STRING),
            element("Observation.status", "code"),
            element("Observation.code", "CodeableConcept"),
            element("Observation.subject", reference_to("Patient", "Group")),
            element("Observation.effective[x]", "dateTime", "Timing"),
            element("Observation.value[x]", "CodeableConcept", "Reference"),
        ),
        structure_definition(
            "Consent",
            "resource",
            element("Consent.id", SYSTEM_STRING),
            element("Consent.status", "code"),
            element("Consent.category", "CodeableConcept", max="*"),
            element("Consent.provision", "BackboneElement", max="*"),
            element("Consent.provision.type", "code"),
            element("Consent.provision.actor", "BackboneElement", max="*"),
            element("Consent.provision.actor.role", "CodeableConcept"),
            element(
                "Consent.provision.provision",
                max="*",
                content_reference="#Consent.provision",
            ),
        ),
        structure_definition(
            "ValueSet",
            "resource",
            element("ValueSet.id", SYSTEM_STRING),
            element("ValueSet.status", "code"),
            element("ValueSet.compose", "BackboneElement"),
            element("ValueSet.compose.include", "BackboneElement", max="*"),
            element("ValueSet.compose.include.system", "uri"),
            element("ValueSet.compose.include.concept", "BackboneElement", max="*"),
            element("ValueSet.compose.include.concept.code", "code"),
            element(
                "ValueSet.compose.exclude",
                max="*",
                content_reference="#ValueSet.compose.include",
            ),
        ),
        structure_definition(
            "Meta",
            "complex-type",
            element(
                "Meta.profile",
                {"code": "canonical", "targetProfile": [CANONICAL + "StructureDefinition"]},
                max="*",
            ),
        ),
        structure_definition(
            "Extension",
            "complex-type",
            element("Extension.id", SYSTEM_STRING),
            element("Extension.extension", "Extension", max="*"),
            element("Extension.url", SYSTEM_STRING),
            element("Extension.value[x]", "string", "Coding", "CodeableConcept", "Reference"),
        ),
        structure_definition(
            "Identifier",
            "complex-type",
            element("Identifier.system", "uri"),
            element("Identifier.value", "string"),
            element("Identifier.assigner", reference_to("Organization")),
        ),
        structure_definition(
            "Reference",
            "complex-type",
            element("Reference.reference", "string"),
            element("Reference.type", "uri"),
            element("Reference.identifier", "Identifier"),
            element("Reference.display", "string"),
        ),
        structure_definition(
            "HumanName",
            "complex-type",
            element("HumanName.family", "string"),
            element("HumanName.given", "string", max="*"),
        ),
        structure_definition(
            "CodeableConcept",
            "complex-type",
            element("CodeableConcept.coding", "Coding", max="*"),
            element("CodeableConcept.text", "string"),
        ),
        structure_definition(
            "Coding",
            "complex-type",
            element("Coding.system", "uri"),
            element("Coding.code", "code"),
            element("Coding.display", "string"),
        ),
        structure_definition(
            "Timing",
            "complex-type",
            element("Timing.event", "dateTime", max="*"),
            element("Timing.repeat", "Element"),
            element("Timing.repeat.frequency", "positiveInt"),
            element("Timing.repeat.period", "decimal"),
        ),
    ]
}

RESOURCE_NAMES = {"Patient", "Observation", "Consent", "ValueSet"}


class InMemorySchemaSource:
    """Schema source over StructureDefinition dicts that records every fetch."""

    def __init__(self, documents: dict[str, dict[str, Any]]) -> None:
        self.documents = documents
        self.fetches: Counter[str] = Counter()
        self.failing: set[str] = set()
        self.delay = 0.0

    async def fetch(self, type_name: str) -> Schema:
        self.fetches[type_name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if type_name in self.failing:
            raise TransportError(type_name, "server responded with 500", 500)
        data = self.documents.get(type_name)
        if data is None:
            raise SchemaNotFound(type_name)
        return parse_structure_definition(data)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def structure_definitions() -> dict[str, dict[str, Any]]:
    """Return the test StructureDefinitions by name."""
    return STRUCTURE_DEFINITIONS


@pytest.fixture
def source() -> InMemorySchemaSource:
    """Return an in-memory schema source over the test StructureDefinitions."""
    return InMemorySchemaSource(STRUCTURE_DEFINITIONS)


@pytest.fixture
def decoder(source: InMemorySchemaSource) -> Decoder:
    """Return a decoder over the in-memory source."""
    return Decoder(source)


@pytest.fixture
def schema_dir(tmp_path: Path) -> Path:
    """Write the test StructureDefinitions to a directory.

    Resources get one file each, data types share one Bundle file.
    """
    directory = tmp_path / "schemas"
    directory.mkdir()
    types_bundle = {"resourceType": "Bundle", "type": "collection", "entry": []}
    for name, sd in STRUCTURE_DEFINITIONS.items():
        if name in RESOURCE_NAMES:
            (directory / f"{name}.json").write_text(json.dumps(sd))
        else:
            types_bundle["entry"].append({"fullUrl": sd["url"], "resource": sd})
    (directory / "profiles-types.json").write_text(json.dumps(types_bundle))
    return directory
