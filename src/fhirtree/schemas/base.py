"""Interface for schema sources."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fhirtree.core.types import Schema


@runtime_checkable
class SchemaSource(Protocol):
    """Anything that can fetch the StructureDefinition of a type by name.

    Implementations raise ``SchemaNotFound`` if they have no definition for the
    type and ``TransportError`` if the fetch itself failed.
    """

    @abstractmethod
    async def fetch(self, type_name: str) -> Schema:
        """Fetch the schema of a type.

        Args:
            type_name: Name of the type (e.g., 'Patient', 'CodeableConcept').

        Returns:
            The parsed schema.
        """
        ...
