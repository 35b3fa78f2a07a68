# src/matflow/cli.py
"""matflow Command Line Interface.

Entry point for the matflow CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from matflow import __version__
from matflow.contracts import MatflowError
from matflow.core.config import load_settings

if TYPE_CHECKING:
    from matflow.core.config import PipelineSettings
    from matflow.engine import Pipeline

__all__ = ["app"]

app = typer.Typer(
    name="matflow",
    help="matflow: Continuous materialized-view pipelines.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"matflow version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """matflow: Continuous materialized-view pipelines."""
    from matflow.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _load_or_exit(settings: str) -> PipelineSettings:
    """Load settings, turning every loading error into a message and exit 1."""
    try:
        return load_settings(Path(settings).expanduser())
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _build_or_exit(config: PipelineSettings) -> Pipeline:
    from matflow.engine import PipelineBuilder

    try:
        return PipelineBuilder.from_settings(config).build()
    except MatflowError as e:
        typer.echo(f"{type(e).__name__}: {e}", err=True)
        raise typer.Exit(1) from None


def _describe(pipeline: Pipeline) -> dict[str, object]:
    target = pipeline.target
    return {
        "target": str(target.path),
        "columns": [{"name": name, "type": data_type} for name, data_type in target.columns],
        "primary_keys": list(target.primary_keys),
        "default_database": pipeline.default_database,
        "drop_old_table": pipeline.drop_old_table,
        "force_new_table": pipeline.force_new_table,
        "coordinator": dict(pipeline.coordinator.options()),
    }


@app.command()
def validate(
    settings: str = typer.Option(..., "--settings", "-s", help="Path to settings YAML file."),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json'.",
    ),
) -> None:
    """Build the pipeline and show the reconciled target table without running it."""
    config = _load_or_exit(settings)
    pipeline = _build_or_exit(config)
    with pipeline:
        description = _describe(pipeline)

    if output_format == "json":
        typer.echo(json.dumps(description))
        return

    typer.echo("Pipeline configuration valid.")
    typer.echo(f"  Target: {description['target']}")
    for column in pipeline.target.columns:
        marker = " (key)" if column[0] in pipeline.target.primary_keys else ""
        typer.echo(f"    {column[0]}: {column[1]}{marker}")


@app.command()
def run(
    settings: str = typer.Option(..., "--settings", "-s", help="Path to settings YAML file."),
    execute: bool = typer.Option(
        False,
        "--execute",
        "-x",
        help="Actually run the pipeline (required for safety).",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json'.",
    ),
) -> None:
    """Build and run a materialized-view pipeline until its job terminates.

    Requires --execute: running may drop and create the target table.
    """
    config = _load_or_exit(settings)

    if not execute:
        if output_format == "console":
            typer.echo("Pipeline configuration loaded.")
            typer.echo(f"  Target: {config.target.table}")
            typer.echo("")
            typer.echo("To execute, add --execute (or -x) flag:", err=True)
            typer.echo(f"  matflow run -s {settings} --execute", err=True)
        raise typer.Exit(1)

    pipeline = _build_or_exit(config)
    try:
        result = pipeline.run()
    except MatflowError as e:
        if output_format == "json":
            typer.echo(json.dumps({"event": "error", "error": str(e), "error_type": type(e).__name__}), err=True)
        else:
            typer.echo(f"Error during pipeline execution: {e}", err=True)
        raise typer.Exit(1) from None

    if output_format == "json":
        typer.echo(
            json.dumps(
                {
                    "event": "completed",
                    "job_id": result.job_id,
                    "net_runtime_ms": result.net_runtime_ms,
                    "accumulators": dict(result.accumulators),
                }
            )
        )
    else:
        typer.echo(f"Job {result.job_id} finished in {result.net_runtime_seconds}s")


@app.command()
def plugins() -> None:
    """List registered stream engines and coordinators."""
    from matflow.plugins import get_plugin_manager

    manager = get_plugin_manager()
    typer.echo("Engines:")
    for name in manager.get_engine_names():
        typer.echo(f"  {name}")
    typer.echo("Coordinators:")
    for name in manager.get_coordinator_names():
        typer.echo(f"  {name}")


if __name__ == "__main__":
    app()
