"""CLI commands for running the prompt transform over a single source file."""

from __future__ import annotations

import ast
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_CONFIG_NAME, ConfigError, EngineConfig, PendingPolicy, load_config
from .transform import CacheLoadError, find_directives, transform_source

APP_HELP = "Splice cached generated code into \"use prompt: ...\" functions."

app = typer.Typer(help=APP_HELP)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _read_source(source: Path) -> bytes:
    # Raw bytes keep CRLF line endings, so spans match offsets in the file on disk.
    if not source.exists():
        raise typer.BadParameter(f"Source file not found: {source}")
    return source.read_bytes()


def _load_engine_config(config: str, policy: Optional[PendingPolicy], cache: Optional[Path]) -> EngineConfig:
    try:
        engine_config = load_config(Path(config))
        return engine_config.with_overrides(
            pending_policy=policy,
            cache_path=cache.as_posix() if cache is not None else None,
        )
    except ConfigError as error:
        typer.echo(f"Failed to load config: {error}", err=True)
        raise typer.Exit(code=1) from error


@app.command()
def transform(
    source: Path = typer.Argument(..., help="Python source file to transform."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the transform configuration file.",
    ),
    cache: Optional[Path] = typer.Option(
        None,
        "--cache",
        help="Substitution cache to read (overrides the configured cache_path).",
    ),
    policy: Optional[PendingPolicy] = typer.Option(
        None,
        "--policy",
        help="How to treat prompts without a cached substitution.",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the transformed source here instead of stdout.",
    ),
    report: bool = typer.Option(
        False,
        "--report/--no-report",
        help="Print a JSON report of every prompt site to stderr.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every prompt site."),
) -> None:
    """Transform SOURCE and print the resulting Python code."""
    _configure_logging(verbose)
    engine_config = _load_engine_config(config, policy, cache)
    text = _read_source(source)
    cache_path = engine_config.resolve_cache_path(Path.cwd())

    try:
        result = transform_source(text, filename=str(source), cache_path=cache_path, config=engine_config)
    except CacheLoadError as error:
        typer.echo(f"Failed to load substitution cache {cache_path}: {error}", err=True)
        raise typer.Exit(code=1) from error
    except SyntaxError as error:
        typer.echo(f"Failed to parse {source}: {error}", err=True)
        raise typer.Exit(code=1) from error

    rendered = result.render() + "\n"
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(rendered, encoding="utf-8")
        typer.echo(f"Wrote {output}", err=True)
    else:
        typer.echo(rendered, nl=False)

    if report:
        typer.echo(json.dumps(result.report.to_dict(), indent=2, ensure_ascii=False), err=True)


@app.command()
def scan(
    source: Path = typer.Argument(..., help="Python source file to inspect."),
    as_json: bool = typer.Option(False, "--json", help="Emit the sites as JSON."),
) -> None:
    """List the prompt directives in SOURCE with their byte spans."""
    text = _read_source(source)
    try:
        tree = ast.parse(text, filename=str(source))
    except SyntaxError as error:
        typer.echo(f"Failed to parse {source}: {error}", err=True)
        raise typer.Exit(code=1) from error

    requests = find_directives(tree, text)
    if as_json:
        typer.echo(json.dumps([request.to_dict() for request in requests], indent=2, ensure_ascii=False))
        return
    if not requests:
        typer.echo("No prompt directives found.")
        return
    for request in requests:
        typer.echo(f"{request.span.start} {request.span.end} {request.name}: {request.prompt}")
        typer.echo(f"    {request.signature}")


if __name__ == "__main__":
    app()
