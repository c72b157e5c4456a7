"""Core type definitions for fhirtree."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# Pseudo-types that never get a schema of their own during decoding
ELEMENT = "Element"
BACKBONE_ELEMENT = "BackboneElement"
RESOURCE = "Resource"
EXTENSION = "Extension"

ABSTRACT_TYPES = frozenset({ELEMENT, BACKBONE_ELEMENT})


class ReferencePolicy(Enum):
    """What to do with a content reference whose target element does not exist."""

    ERROR = "error"  # Raise MalformedReference
    OMIT = "omit"  # Drop the property and log a warning


class StructureKind(Enum):
    """Kind of a StructureDefinition."""

    PRIMITIVE_TYPE = "primitive-type"
    COMPLEX_TYPE = "complex-type"
    RESOURCE = "resource"
    LOGICAL = "logical"


@dataclass(frozen=True)
class ElementType:
    """A type reference of an element, e.g. ``Reference`` with target profiles."""

    code: str
    target_profile: tuple[str, ...] | None = None

    @property
    def is_primitive(self) -> bool:
        """Primitive type codes start with a lower-case letter (``string``, ``dateTime``)."""
        return self.code[:1].islower()

    @property
    def is_abstract(self) -> bool:
        return self.code in ABSTRACT_TYPES


@dataclass(frozen=True)
class ElementDefinition:
    """One entry of a schema describing a path and its allowed types."""

    id: str
    path: str
    types: tuple[ElementType, ...] = ()
    content_reference: str | None = None
    max: str = "1"

    @property
    def segments(self) -> list[str]:
        return self.path.split(".")

    @property
    def depth(self) -> int:
        return self.path.count(".") + 1

    @property
    def name(self) -> str:
        """Property name of the element, the second path segment."""
        segments = self.segments
        return segments[1] if len(segments) > 1 else segments[0]

    @property
    def only_type(self) -> ElementType | None:
        return self.types[0] if len(self.types) == 1 else None

    def with_path(self, path: str) -> ElementDefinition:
        """Return a copy of this element located at another path."""
        return ElementDefinition(
            id=self.id,
            path=path,
            types=self.types,
            content_reference=self.content_reference,
            max=self.max,
        )


@dataclass(frozen=True)
class Schema:
    """A parsed StructureDefinition.

    Elements keep the declaration order of the snapshot, which is the order
    decoded properties are emitted in.
    """

    name: str
    kind: StructureKind
    elements: tuple[ElementDefinition, ...]
    url: str = ""
    abstract: bool = False

    @property
    def is_resource(self) -> bool:
        return self.kind is StructureKind.RESOURCE

    def find_element(self, element_id: str) -> ElementDefinition | None:
        """Find an element by its id."""
        return next((e for e in self.elements if e.id == element_id), None)


@dataclass(frozen=True)
class DecodedPrimitive:
    """A decoded primitive value with optional extensions from its ``_name`` sidecar."""

    type: ElementType
    value: Any
    extensions: tuple[DecodedNode, ...] | None = None


@dataclass(frozen=True)
class DecodedNode:
    """A structured representation of a resource or complex value.

    ``object`` is the raw sub-object the node was decoded from. It is the same
    object that was passed in, not a copy, so consumers can get back to
    data the schema did not describe.
    """

    type: ElementType
    properties: tuple[DecodedProperty, ...]
    object: Any = field(repr=False)

    def get(self, name: str) -> DecodedProperty | None:
        """Return the property with the given name, if present."""
        return next((p for p in self.properties if p.name == name), None)

    @property
    def property_names(self) -> list[str]:
        return [p.name for p in self.properties]


DecodedValue = Union[
    DecodedNode,
    tuple[DecodedNode, ...],
    DecodedPrimitive,
    tuple[DecodedPrimitive, ...],
]


@dataclass(frozen=True)
class DecodedProperty:
    """A named property. The name includes the type for polymorphic properties."""

    name: str
    type: ElementType
    value: DecodedValue
    human_name: str | None = None

    @property
    def is_list(self) -> bool:
        return isinstance(self.value, tuple)


@dataclass(frozen=True)
class DecodedBundleEntry:
    """A Bundle entry together with the decoded form of its resource."""

    entry: Any
    node: DecodedNode | None = None


@dataclass(frozen=True)
class DecodedBundle:
    """A Bundle whose entry resources have been decoded."""

    bundle: Any
    entries: tuple[DecodedBundleEntry, ...] = ()
