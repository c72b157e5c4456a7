"""Decoder configuration, optionally loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from fhirtree.core.types import ReferencePolicy
from fhirtree.schemas.base import SchemaSource
from fhirtree.schemas.http import HttpSchemaSource
from fhirtree.schemas.loader import DirectorySchemaSource


def _parse_reference_policy(value: str | ReferencePolicy | None) -> ReferencePolicy:
    """Parse the missing content reference policy from a YAML value."""
    if not value:
        return ReferencePolicy.ERROR
    if isinstance(value, ReferencePolicy):
        return value
    return ReferencePolicy(value.lower())


@dataclass
class DecoderConfig:
    """Options for schema loading and decoding.

    Example YAML file:
    ```yaml
    server_url: http://localhost:8080/fhir
    timeout: 5
    cache_ttl: 3600
    prefetch_closure: false
    on_missing_reference: omit
    ```
    """

    # Schema source, a directory takes precedence over a server
    schema_dir: Path | None = None
    server_url: str | None = None
    timeout: float = 10.0

    # Seconds a cached schema is valid, None keeps schemas for the cache's lifetime
    cache_ttl: float | None = None

    # Load all transitively referenced schemas before decoding a resource
    prefetch_closure: bool = True

    on_missing_reference: ReferencePolicy = ReferencePolicy.ERROR

    def __post_init__(self) -> None:
        if self.schema_dir is not None:
            self.schema_dir = Path(self.schema_dir)
        self.on_missing_reference = _parse_reference_policy(self.on_missing_reference)
        if self.cache_ttl is not None and self.cache_ttl <= 0:
            raise ValueError(f"cache_ttl must be positive, got {self.cache_ttl}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DecoderConfig:
        """Create a config from a mapping of option names to values.

        Raises:
            ValueError: If the mapping contains unknown options or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(
                f"Unknown config options: {sorted(unknown)}. Valid options are: {sorted(known)}"
            )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> DecoderConfig:
        """Load a config from a YAML file.

        Args:
            path: Path to the YAML file.

        Returns:
            The parsed config. Relative ``schema_dir`` values are resolved
            against the directory of the file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValueError: If the file is invalid.
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        schema_dir = data.get("schema_dir")
        if schema_dir is not None and not Path(schema_dir).is_absolute():
            data["schema_dir"] = path.parent / schema_dir

        return cls.from_dict(data)

    def create_source(self) -> SchemaSource:
        """Create the schema source this config points to.

        Raises:
            ValueError: If neither a schema directory nor a server is configured.
        """
        if self.schema_dir is not None:
            return DirectorySchemaSource(self.schema_dir)
        if self.server_url:
            return HttpSchemaSource(self.server_url, timeout=self.timeout)
        raise ValueError("No schema source configured, set schema_dir or server_url")
