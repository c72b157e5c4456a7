"""Command-line interface for fhirtree."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click

from fhirtree import __version__
from fhirtree.config import DecoderConfig
from fhirtree.core.errors import DecodeError
from fhirtree.core.serialization import bundle_to_dict, node_to_dict
from fhirtree.decoding.decoder import Decoder
from fhirtree.schemas.http import HttpSchemaSource
from fhirtree.schemas.loader import DirectorySchemaSource


def load_config(
    config_file: Path | None, schema_dir: Path | None, server: str | None
) -> DecoderConfig:
    """Build the config from an optional file and command line overrides."""
    config = DecoderConfig.from_yaml(config_file) if config_file else DecoderConfig()
    if schema_dir is not None:
        config.schema_dir = schema_dir
    if server is not None:
        config.server_url = server
        if schema_dir is None:
            config.schema_dir = None
    return config


async def _with_decoder(config: DecoderConfig, action: Any) -> Any:
    source = config.create_source()
    try:
        return await action(Decoder(source, config))
    finally:
        if isinstance(source, HttpSchemaSource):
            await source.close()


def run(config: DecoderConfig, action: Any) -> Any:
    """Run an async action with a decoder, mapping decode errors to click errors."""
    try:
        return asyncio.run(_with_decoder(config, action))
    except (DecodeError, ValueError) as err:
        raise click.ClickException(str(err)) from err


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file",
)
@click.option(
    "--schema-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory with StructureDefinition JSON files",
)
@click.option("--server", default=None, help="FHIR server base URL to load schemas from")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    schema_dir: Path | None,
    server: str | None,
    verbose: bool,
) -> None:
    """fhirtree - Decode FHIR resources into ordered, typed property trees."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_file, schema_dir, server)
    except ValueError as err:
        raise click.ClickException(str(err)) from err


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file (default: stdout)",
)
@click.option("--pretty/--compact", default=True, help="Pretty print JSON output")
@click.option("--objects/--no-objects", default=False, help="Include raw objects in output")
@click.pass_context
def decode(
    ctx: click.Context,
    input_file: Path,
    output: Path | None,
    pretty: bool,
    objects: bool,
) -> None:
    """Decode a resource or Bundle JSON file.

    Examples:

        fhirtree --schema-dir schemas decode patient.json

        fhirtree --server http://localhost:8080/fhir decode bundle.json -o tree.json
    """
    try:
        resource = json.loads(input_file.read_text())
    except json.JSONDecodeError as err:
        raise click.ClickException(f"Invalid JSON in {input_file}: {err}") from err

    async def action(decoder: Decoder) -> dict[str, Any]:
        if isinstance(resource, dict) and resource.get("resourceType") == "Bundle":
            return bundle_to_dict(await decoder.decode_bundle(resource), objects)
        return node_to_dict(await decoder.decode_resource(resource), objects)

    result = run(ctx.obj["config"], action)
    output_json = json.dumps(result, indent=2 if pretty else None, default=str)

    if output:
        output.write_text(output_json)
        click.echo(f"Output written to {output}")
    else:
        click.echo(output_json)


@cli.command()
@click.argument("type_name")
@click.pass_context
def closure(ctx: click.Context, type_name: str) -> None:
    """List all types a type transitively depends on.

    Example:

        fhirtree --schema-dir schemas closure Patient
    """

    async def action(decoder: Decoder) -> list[str]:
        return list(await decoder.closure(type_name))

    for name in run(ctx.obj["config"], action):
        click.echo(name)


@cli.command("list-types")
@click.pass_context
def list_types(ctx: click.Context) -> None:
    """List types available in the schema directory."""
    config: DecoderConfig = ctx.obj["config"]
    if config.schema_dir is None:
        raise click.ClickException("list-types needs a schema directory")

    source = DirectorySchemaSource(config.schema_dir)
    try:
        types = source.list_types()
    except DecodeError as err:
        raise click.ClickException(str(err)) from err

    click.echo("Available types:")
    click.echo()
    for name in types:
        click.echo(f"  - {name}")


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
