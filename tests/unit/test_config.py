"""Tests for decoder configuration."""

from pathlib import Path

import pytest

from fhirtree.config import DecoderConfig
from fhirtree.core.types import ReferencePolicy
from fhirtree.schemas.http import HttpSchemaSource
from fhirtree.schemas.loader import DirectorySchemaSource


class TestDecoderConfig:
    """Tests for DecoderConfig."""

    def test_defaults(self) -> None:
        """Test default options."""
        config = DecoderConfig()
        assert config.schema_dir is None
        assert config.server_url is None
        assert config.timeout == 10.0
        assert config.cache_ttl is None
        assert config.prefetch_closure is True
        assert config.on_missing_reference is ReferencePolicy.ERROR

    def test_policy_from_string(self) -> None:
        """Test the reference policy is parsed case-insensitively."""
        config = DecoderConfig(on_missing_reference="OMIT")  # type: ignore[arg-type]
        assert config.on_missing_reference is ReferencePolicy.OMIT

    def test_invalid_policy(self) -> None:
        """Test unknown policies are rejected."""
        with pytest.raises(ValueError):
            DecoderConfig(on_missing_reference="ignore")  # type: ignore[arg-type]

    def test_invalid_cache_ttl(self) -> None:
        """Test cache_ttl must be positive."""
        with pytest.raises(ValueError, match="cache_ttl"):
            DecoderConfig(cache_ttl=0)

    def test_from_dict_unknown_option(self) -> None:
        """Test unknown options are rejected."""
        with pytest.raises(ValueError, match="Unknown config options"):
            DecoderConfig.from_dict({"server": "http://localhost"})

    def test_from_yaml(self, tmp_path: Path) -> None:
        """Test loading a YAML config file."""
        config_file = tmp_path / "fhirtree.yaml"
        config_file.write_text(
            "server_url: http://localhost:8080/fhir\n"
            "timeout: 5\n"
            "cache_ttl: 3600\n"
            "prefetch_closure: false\n"
            "on_missing_reference: omit\n"
        )

        config = DecoderConfig.from_yaml(config_file)

        assert config.server_url == "http://localhost:8080/fhir"
        assert config.timeout == 5
        assert config.cache_ttl == 3600
        assert config.prefetch_closure is False
        assert config.on_missing_reference is ReferencePolicy.OMIT

    def test_from_yaml_relative_schema_dir(self, tmp_path: Path) -> None:
        """Test relative schema directories are resolved against the file."""
        config_file = tmp_path / "fhirtree.yaml"
        config_file.write_text("schema_dir: schemas\n")

        config = DecoderConfig.from_yaml(config_file)

        assert config.schema_dir == tmp_path / "schemas"

    def test_from_yaml_empty(self, tmp_path: Path) -> None:
        """Test an empty file gives the defaults."""
        config_file = tmp_path / "fhirtree.yaml"
        config_file.write_text("")
        assert DecoderConfig.from_yaml(config_file) == DecoderConfig()

    def test_from_yaml_not_a_mapping(self, tmp_path: Path) -> None:
        """Test files must contain a mapping."""
        config_file = tmp_path / "fhirtree.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            DecoderConfig.from_yaml(config_file)

    def test_from_yaml_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            DecoderConfig.from_yaml(tmp_path / "missing.yaml")


class TestCreateSource:
    """Tests for DecoderConfig.create_source."""

    def test_directory(self, tmp_path: Path) -> None:
        """Test a schema directory takes precedence over a server."""
        config = DecoderConfig(schema_dir=tmp_path, server_url="http://localhost")
        source = config.create_source()
        assert isinstance(source, DirectorySchemaSource)
        assert source.schema_dir == tmp_path

    def test_server(self) -> None:
        """Test a server URL creates an HTTP source."""
        config = DecoderConfig(server_url="http://localhost/fhir/", timeout=3)
        source = config.create_source()
        assert isinstance(source, HttpSchemaSource)
        assert source.base_url == "http://localhost/fhir"
        assert source.timeout == 3

    def test_no_source(self) -> None:
        """Test a config without source can't create one."""
        with pytest.raises(ValueError, match="No schema source"):
            DecoderConfig().create_source()
