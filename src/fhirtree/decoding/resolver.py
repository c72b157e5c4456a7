"""Classification of schema elements and selection of concrete types."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from fhirtree.core.errors import MalformedReference
from fhirtree.core.types import (
    BACKBONE_ELEMENT,
    RESOURCE,
    ElementDefinition,
    ElementType,
    ReferencePolicy,
)
from fhirtree.decoding.index import SchemaElementIndex

logger = logging.getLogger(__name__)

CHOICE_SUFFIX = "[x]"


def to_title_case(s: str) -> str:
    return s[:1].upper() + s[1:]


def raw_value(raw: Any, key: str) -> Any:
    """Value of ``key`` in a raw object, None if absent, null or not an object."""
    if not isinstance(raw, Mapping):
        return None
    return raw.get(key)


class ElementKind(Enum):
    """How an element is decoded."""

    CONTENT_REFERENCE = "content-reference"
    ABSTRACT = "abstract"
    RESOURCE_SLOT = "resource-slot"
    CONCRETE = "concrete"


@dataclass(frozen=True)
class ElementContext:
    """The element lists an element is resolved in.

    ``root_elements`` are the elements of the schema being decoded and serve
    content references. ``local_elements`` are the (rebased) elements of the
    structure currently decoded, owned by the absolute path ``anchor``.
    """

    root_name: str
    root_elements: tuple[ElementDefinition, ...]
    local_elements: tuple[ElementDefinition, ...]
    anchor: str

    @classmethod
    def for_schema(cls, name: str, elements: tuple[ElementDefinition, ...]) -> ElementContext:
        return cls(root_name=name, root_elements=elements, local_elements=elements, anchor=name)

    def nested(self, elements: tuple[ElementDefinition, ...], anchor: str) -> ElementContext:
        return ElementContext(
            root_name=self.root_name,
            root_elements=self.root_elements,
            local_elements=elements,
            anchor=anchor,
        )

    @property
    def children(self) -> list[ElementDefinition]:
        """Immediate children of the structure, the elements at depth 2."""
        return [e for e in self.local_elements if e.depth == 2]


@dataclass(frozen=True)
class ContentReference:
    """An element sharing the shape of another element, decoded as backbone element."""

    name: str
    context: ElementContext
    type: ElementType = ElementType(BACKBONE_ELEMENT)


@dataclass(frozen=True)
class Abstract:
    """An ``Element`` or ``BackboneElement`` decoded inline from local elements."""

    name: str
    type: ElementType
    context: ElementContext


@dataclass(frozen=True)
class ResourceSlot:
    """A ``Resource`` element; every value names its own schema."""

    name: str
    type: ElementType = ElementType(RESOURCE)


@dataclass(frozen=True)
class Concrete:
    """An element of one named type, the choice already made for ``[x]`` elements."""

    name: str
    type: ElementType
    human_name: str | None = None

    @property
    def is_primitive(self) -> bool:
        return self.type.is_primitive


Resolution = Union[ContentReference, Abstract, ResourceSlot, Concrete]


class TypeResolver:
    """Decides how each schema element is decoded against a raw object."""

    def __init__(
        self,
        index: SchemaElementIndex,
        on_missing_reference: ReferencePolicy = ReferencePolicy.ERROR,
    ) -> None:
        """Initialize type resolver.

        Args:
            index: Element index used to slice child element lists.
            on_missing_reference: Policy for content references without target.
        """
        self.index = index
        self.on_missing_reference = on_missing_reference

    def classify(self, element: ElementDefinition) -> ElementKind:
        """Classify an element independent of any data."""
        if element.content_reference is not None:
            return ElementKind.CONTENT_REFERENCE
        only_type = element.only_type
        if only_type is not None and only_type.is_abstract:
            return ElementKind.ABSTRACT
        if only_type is not None and only_type.code == RESOURCE:
            return ElementKind.RESOURCE_SLOT
        return ElementKind.CONCRETE

    def resolve(
        self,
        element: ElementDefinition,
        context: ElementContext,
        raw: Any,
    ) -> Resolution | None:
        """Resolve an element against a raw object.

        Args:
            element: Element at depth 2 of ``context.local_elements``.
            context: Element lists the element belongs to.
            raw: The raw object holding the element's value.

        Returns:
            How to decode the value, or None if the raw object has no value
            for the element.

        Raises:
            MalformedReference: If a content reference has no target and the
                policy is ``ReferencePolicy.ERROR``.
        """
        kind = self.classify(element)

        if kind is ElementKind.CONCRETE:
            return self._resolve_concrete(element, raw)

        name = element.name
        if raw_value(raw, name) is None:
            return None

        if kind is ElementKind.CONTENT_REFERENCE:
            return self._resolve_content_reference(element, context)
        if kind is ElementKind.ABSTRACT:
            return Abstract(
                name=name,
                type=element.types[0],
                context=context.nested(
                    self.index.get(
                        context.local_elements,
                        context.anchor,
                        element.path,
                        root=context.root_elements,
                    ),
                    f"{context.anchor}.{name}",
                ),
            )
        return ResourceSlot(name=name)

    def _resolve_content_reference(
        self, element: ElementDefinition, context: ElementContext
    ) -> ContentReference | None:
        reference = element.content_reference or ""
        target_id = reference.rsplit("#", 1)[-1]
        target = next((e for e in context.root_elements if e.id == target_id), None)

        if target is None:
            if self.on_missing_reference is ReferencePolicy.ERROR:
                raise MalformedReference(f"{context.anchor}.{element.name}", reference)
            logger.warning(
                "Omitting %s.%s: content reference %s does not resolve",
                context.anchor,
                element.name,
                reference,
            )
            return None

        return ContentReference(
            name=element.name,
            context=context.nested(
                self.index.get(context.root_elements, context.root_name, target.path),
                target.path,
            ),
        )

    def _resolve_concrete(self, element: ElementDefinition, raw: Any) -> Concrete | None:
        if not element.types:
            return None

        name = element.name
        if name.endswith(CHOICE_SUFFIX):
            base_name = name[: -len(CHOICE_SUFFIX)]
            for element_type in element.types:
                property_name = base_name + to_title_case(element_type.code)
                if raw_value(raw, property_name) is not None:
                    return Concrete(name=property_name, type=element_type, human_name=base_name)
            return None

        if raw_value(raw, name) is None:
            return None
        return Concrete(name=name, type=element.types[0])
