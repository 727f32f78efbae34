"""CLI entry point for api-doc-sync."""

import asyncio
import logging
from pathlib import Path
from typing import Any

import click

from api_doc_sync.adapters import InvokeSourceConfig
from api_doc_sync.errors import DocSyncError
from api_doc_sync.fetch import fetch_documentation
from api_doc_sync.generator.client import CodegenOptions
from api_doc_sync.parser.detect import detect_format
from api_doc_sync.pipeline.config import (
    GeneratorStageConfig,
    InvokeStageConfig,
    OutputStageConfig,
    PipelineRunOptions,
    load_run_options,
)
from api_doc_sync.pipeline.core import DocSyncPipeline, PipelineResult

FORMATS = ["openapi", "swagger", "postman", "apifox"]


def _load(source: str) -> Any:
    """Fetch a document from a URL or local path."""
    try:
        return asyncio.run(fetch_documentation(source))
    except DocSyncError as exc:
        raise click.ClickException(exc.message) from exc


def _run(options: PipelineRunOptions) -> PipelineResult:
    try:
        return DocSyncPipeline().run_sync(options)
    except DocSyncError as exc:
        raise click.ClickException(exc.message) from exc


def _report(result: PipelineResult) -> None:
    for path in result.written_files:
        click.echo(f"  Created {path}")
    for error in result.invoke_results.errors if result.invoke_results else []:
        click.echo(f"  Skipped source {error.name or error.type}: {error.message}", err=True)


@click.group()
@click.option("-v", "--verbose", count=True, help="Log pipeline stages (-vv for debug output).")
def main(verbose: int):
    """api-doc-sync: generate typed Python API clients from API documents."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@main.command()
@click.argument("source")
@click.option(
    "-o", "--output", required=True, envvar="API_DOC_SYNC_OUTPUT",
    type=click.Path(file_okay=False, path_type=Path), help="Output directory for the generated client.",
)
@click.option(
    "--prefer", default=None, envvar="API_DOC_SYNC_PREFER",
    type=click.Choice(FORMATS), help="Document format to try first instead of auto-detection.",
)
@click.option("--entry", default="__init__", show_default=True, help="Entry module name.")
@click.option("--keep/--clean", default=False, help="Keep existing files in the output directory.")
def generate(source: str, output: Path, prefer: str | None, entry: str, keep: bool):
    """Generate a client package from SOURCE (path or URL)."""
    click.echo(f"Reading {source}...")
    document = _load(source)
    fmt = prefer or detect_format(document)
    if fmt is None:
        raise click.ClickException(f"Unrecognised document format: {source}")

    options = PipelineRunOptions(
        invoke=InvokeStageConfig(
            sources=[InvokeSourceConfig(type=fmt, name=source, document=document)],
            continue_on_error=False,
        ),
        generator=GeneratorStageConfig(options=CodegenOptions(entry_file_name=entry)),
        output=OutputStageConfig(output_dir=str(output), clean=not keep),
    )
    result = _run(options)
    service = result.service_definition
    parsed_as = service.source.kind if service.source else result.adapter_name
    click.echo(f"Format: {parsed_as} (parsed by {result.adapter_name} adapter)")
    click.echo(f"Found {len(service.endpoints)} endpoints.")
    _report(result)
    click.echo(f"Generated {len(result.written_files)} files in {output}")


@main.command()
@click.option(
    "-c", "--config", "config_path", required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path), help="YAML or JSON run configuration.",
)
@click.option(
    "-o", "--output", default=None, envvar="API_DOC_SYNC_OUTPUT",
    type=click.Path(file_okay=False, path_type=Path), help="Override the configured output directory.",
)
def run(config_path: Path, output: Path | None):
    """Run the pipeline described by a configuration file."""
    click.echo(f"Loading {config_path}...")
    try:
        options = load_run_options(config_path)
    except DocSyncError as exc:
        raise click.ClickException(exc.message) from exc
    if output is not None:
        current = options.output or OutputStageConfig()
        options.output = current.model_copy(update={"output_dir": str(output)})

    result = _run(options)
    click.echo(f"Found {len(result.service_definition.endpoints)} endpoints.")
    _report(result)
    if result.written_files:
        click.echo(f"Done! Wrote {len(result.written_files)} files.")
    else:
        click.echo("Done! No output stage configured.")


@main.command()
@click.argument("source")
def detect(source: str):
    """Print the format of SOURCE (path or URL)."""
    fmt = detect_format(_load(source))
    if fmt is None:
        raise click.ClickException(f"Unrecognised document format: {source}")
    click.echo(fmt)
