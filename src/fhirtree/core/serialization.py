"""Serialization helpers for decoded trees.

Converts DecodedNode trees into plain JSON-compatible dicts using the
camelCase keys rendering layers expect (``humanName``, ``targetProfile``).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from fhirtree.core.types import (
    ELEMENT,
    EXTENSION,
    DecodedBundle,
    DecodedNode,
    DecodedPrimitive,
    DecodedProperty,
    DecodedValue,
    ElementType,
)


def type_to_dict(element_type: ElementType) -> dict[str, Any]:
    d: dict[str, Any] = {"code": element_type.code}
    if element_type.target_profile is not None:
        d["targetProfile"] = list(element_type.target_profile)
    return d


def primitive_to_dict(primitive: DecodedPrimitive) -> dict[str, Any]:
    d: dict[str, Any] = {"type": type_to_dict(primitive.type), "value": primitive.value}
    if primitive.extensions is not None:
        d["extensions"] = [node_to_dict(e, include_object=False) for e in primitive.extensions]
    return d


def value_to_dict(value: DecodedValue, include_object: bool = True) -> Any:
    if isinstance(value, tuple):
        return [value_to_dict(v, include_object) for v in value]
    if isinstance(value, DecodedPrimitive):
        return primitive_to_dict(value)
    if isinstance(value, DecodedNode):
        return node_to_dict(value, include_object)
    raise TypeError(f"Unsupported decoded value: {type(value)}")


def property_to_dict(prop: DecodedProperty, include_object: bool = True) -> dict[str, Any]:
    d: dict[str, Any] = {"name": prop.name}
    if prop.human_name is not None:
        d["humanName"] = prop.human_name
    d["type"] = type_to_dict(prop.type)
    d["value"] = value_to_dict(prop.value, include_object)
    return d


def node_to_dict(node: DecodedNode, include_object: bool = True) -> dict[str, Any]:
    """Convert a decoded node into a dict.

    Args:
        node: The node to convert.
        include_object: Whether to include the raw ``object`` of every node.

    Returns:
        A JSON-compatible dict.
    """
    d: dict[str, Any] = {
        "type": type_to_dict(node.type),
        "properties": [property_to_dict(p, include_object) for p in node.properties],
    }
    if include_object:
        d["object"] = node.object
    return d


def bundle_to_dict(decoded: DecodedBundle, include_object: bool = True) -> dict[str, Any]:
    """Convert a decoded bundle back into a Bundle dict with a ``fhirObjectEntry`` list."""
    d = dict(decoded.bundle)
    if decoded.entries:
        d["fhirObjectEntry"] = [
            {**e.entry, "fhirObject": node_to_dict(e.node, include_object)}
            if e.node is not None
            else e.entry
            for e in decoded.entries
        ]
    return d


def wrap_extensions(extensions: Sequence[DecodedNode]) -> DecodedNode:
    """Wrap decoded extensions into a synthetic node with one ``extension`` property.

    Lets the extensions of a primitive be rendered like any other element.
    """
    items = tuple(extensions)
    return DecodedNode(
        type=ElementType(ELEMENT),
        properties=(
            DecodedProperty(name="extension", type=ElementType(EXTENSION), value=items),
        ),
        object={"extension": [e.object for e in items]},
    )
