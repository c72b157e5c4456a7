"""Schema source that searches StructureDefinitions on a FHIR server."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from fhirtree.core.errors import SchemaNotFound, TransportError
from fhirtree.core.types import Schema
from fhirtree.schemas.loader import parse_structure_definition

logger = logging.getLogger(__name__)

CANONICAL_BASE = "http://hl7.org/fhir/StructureDefinition/"
FHIR_JSON = "application/fhir+json"


class HttpSchemaSource:
    """Fetches StructureDefinitions by canonical URL from a FHIR server.

    Issues ``GET {base_url}/StructureDefinition?url=<canonical>`` and expects a
    searchset Bundle with exactly one entry.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize HTTP source.

        Args:
            base_url: Base URL of the FHIR server.
            timeout: HTTP request timeout in seconds.
            client: Optional client to use instead of creating one.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> HttpSchemaSource:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def structure_definition_url(self) -> str:
        return f"{self.base_url}/StructureDefinition"

    async def fetch(self, type_name: str) -> Schema:
        """Fetch the schema of a type from the server.

        Raises:
            SchemaNotFound: If the server has no or no unique definition.
            TransportError: If the request failed or returned an error status.
        """
        client = self._get_client()
        try:
            response = await client.get(
                self.structure_definition_url(),
                params={"url": CANONICAL_BASE + type_name},
                headers={"Accept": FHIR_JSON},
            )
        except httpx.HTTPError as err:
            raise TransportError(type_name, str(err)) from err

        if response.status_code == 404:
            raise SchemaNotFound(type_name, "server responded with 404")
        if not response.is_success:
            raise TransportError(
                type_name, f"server responded with {response.status_code}", response.status_code
            )

        try:
            bundle = response.json()
        except ValueError as err:
            raise TransportError(type_name, f"invalid JSON: {err}", response.status_code) from err

        entries = bundle.get("entry") if isinstance(bundle, dict) else None
        if not entries:
            raise SchemaNotFound(type_name, "expected one bundle entry but found none")
        if len(entries) != 1:
            raise SchemaNotFound(type_name, f"expected one bundle entry but found {len(entries)}")

        logger.debug("Loaded StructureDefinition %s from %s", type_name, self.base_url)
        try:
            return parse_structure_definition(entries[0].get("resource") or {})
        except ValueError as err:
            raise TransportError(type_name, str(err), response.status_code) from err
