"""Main CLI application."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import typer
from typing_extensions import Annotated

from .. import bundle
from ..core.errors import LoadError, PackagingError
from ..rendering import batch
from ..rendering.engine import conversion_attributes
from ..settings import get_settings
from .parsers import bundle_url_hint, parse_attribute

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="uipreview",
    help="Render UI preview pages, serve them with live reload, and pack the UI bundle.",
    no_args_is_help=True,
)

Verbose = Annotated[
    bool,
    typer.Option(
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def _pack(source_dir: Path, output_dir: Path, name: str) -> Path:
    try:
        path = bundle.create_bundle(source_dir, output_dir, name)
    except PackagingError as exc:
        logger.error(f"Error creating bundle: {exc}")
        raise typer.Exit(code=1) from exc

    hint = bundle_url_hint(str(path), dict(os.environ))
    if hint:
        logger.info(hint)
    return path


@app.command()
def build(
    attributes: Annotated[
        list[str],
        typer.Option(
            "--attribute",
            "-a",
            help="Converter attribute NAME=VALUE (NAME alone sets true, NAME! unsets). Repeatable.",
            metavar="NAME=VALUE",
        ),
    ] = [],
    with_bundle: Annotated[
        bool,
        typer.Option(
            "--bundle/--no-bundle",
            help="Pack the UI directory into the bundle archive after building.",
        ),
    ] = True,
    verbose: Verbose = False,
) -> None:
    """Render every preview page once into the output directory."""
    _configure_logging(verbose)
    settings = get_settings()

    overrides = dict(map(parse_attribute, attributes))
    attrs = conversion_attributes(settings.diagram_server_url, overrides)
    logger.debug(f"Converter attributes: {attrs}")

    try:
        report = batch.build_all(
            settings.content_root,
            settings.output_root,
            source_root=settings.source_root,
            model_path=settings.model_path,
            image_dir=settings.image_dir,
            suffix=settings.content_suffix,
            strict_templates=settings.strict_templates,
            attributes=attrs,
        )
    except LoadError as exc:
        logger.error(f"Error building preview pages: {exc}")
        raise typer.Exit(code=1) from exc

    for failure in report.failed:
        logger.warning(f"Skipped {failure.source}: {failure.error}")

    if with_bundle:
        _pack(settings.ui_root, settings.bundle_dir, settings.bundle_name)


@app.command()
def serve(
    host: Annotated[
        str,
        typer.Option("--host", help="Bind address (default from settings).", metavar="HOST"),
    ] = "",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Bind port (default from settings).", metavar="PORT"),
    ] = 0,
    verbose: Verbose = False,
) -> None:
    """Serve preview pages rendered on demand, reloading on source changes."""
    _configure_logging(verbose)

    from ..server.app import main as run_server

    run_server(host=host or None, port=port or None)


@app.command()
def pack(
    source_dir: Annotated[
        Path,
        typer.Argument(help="Directory to package.", metavar="SOURCE"),
    ] = Path("public/_"),
    output_dir: Annotated[
        Path,
        typer.Argument(help="Directory receiving the archive.", metavar="OUTPUT"),
    ] = Path("build"),
    name: Annotated[
        str,
        typer.Argument(help="Bundle name prefix.", metavar="NAME"),
    ] = "ui",
    verbose: Verbose = False,
) -> None:
    """Pack a directory into <OUTPUT>/<NAME>-bundle.zip."""
    _configure_logging(verbose)
    path = _pack(source_dir, output_dir, name)
    typer.echo(f"Bundle created successfully: {path}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
