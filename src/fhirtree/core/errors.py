"""Exceptions raised while loading schemas and decoding resources."""

from __future__ import annotations


class DecodeError(Exception):
    """Base class for all fhirtree errors."""


class SchemaNotFound(DecodeError, LookupError):
    """The schema source has no definition for a type."""

    def __init__(self, type_name: str, detail: str | None = None) -> None:
        self.type_name = type_name
        message = f"StructureDefinition not found: {type_name}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class TransportError(DecodeError):
    """Fetching a schema failed before a definition could be read."""

    def __init__(self, type_name: str, message: str, status_code: int | None = None) -> None:
        self.type_name = type_name
        self.status_code = status_code
        super().__init__(f"error while loading the {type_name} StructureDefinition: {message}")


class MalformedReference(DecodeError):
    """A content reference points to an element id that does not exist."""

    def __init__(self, path: str, reference: str) -> None:
        self.path = path
        self.reference = reference
        super().__init__(f"content reference {reference} of {path} does not resolve")


class MissingResourceType(DecodeError, ValueError):
    """A resource has no usable ``resourceType``."""

    def __init__(self, context: str = "resource") -> None:
        super().__init__(f"{context} has no resourceType")
