"""Thin CLI wrapper for ipa_signer.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from ipa_signer import __version__
from ipa_signer.config import get_settings, print_settings_json
from ipa_signer.errors import SignerError
from ipa_signer.ota.manifest import build_manifest
from ipa_signer.pipeline.publish import prune_published, published_url
from ipa_signer.pipeline.service import authorize_request, sign_package
from ipa_signer.types import SignRequest

app = typer.Typer(
    name="ipa-signer",
    help="IPA Signer - re-sign iOS packages and publish them for OTA install",
    no_args_is_help=True,
)
console = Console()


def configure_logging(level: str) -> None:
    """Send log records through Rich at the given level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ipa-signer version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """IPA Signer - re-sign iOS packages and publish them for OTA install."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Publish directory:   {settings.public_dir}")
    console.print(f"  Work directory:      {settings.work_dir}")
    console.print(f"  Signer:              {settings.zsign_path}")
    console.print(f"  Profile:             {settings.profile_path}")
    console.print(f"  Key:                 {settings.key_path}")
    console.print()
    console.print("[bold]Service:[/bold]")
    console.print(f"  Base URL:            {settings.base_url or '(from request)'}")
    console.print(f"  Listen:              {settings.host}:{settings.port}")
    console.print(f"  CORS origins:        {', '.join(settings.cors_origins)}")
    console.print(f"  Allowed UDIDs:       {len(settings.allowed_udids)}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Packaging:[/bold]")
    console.print(f"  Zip compression:     {settings.zip_compression}")
    console.print(f"  Max upload bytes:    {settings.max_upload_bytes}")
    console.print(
        f"  Max signings:        {settings.max_concurrent_signings or 'unbounded'}"
    )
    console.print(f"  Sign timeout:        {settings.sign_timeout or 'none'}")
    console.print()
    console.print("[bold]Pruning (seconds):[/bold]")
    console.print(f"  Interval:            {settings.prune_interval}")
    console.print(f"  Max age:             {settings.published_max_age}")


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Bind address"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Bind port"),
    ] = None,
) -> None:
    """Start the HTTP service."""
    import uvicorn

    from web.app import create_app

    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        application = create_app(settings)
    except SignerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from None

    uvicorn.run(
        application,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def sign(
    ipa: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, help="IPA file to sign"),
    ],
    udid: Annotated[
        str,
        typer.Option("--udid", "-u", help="Device UDID requesting the install"),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Sign a local IPA and publish it like an uploaded one."""
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        device_id = authorize_request(
            udid,
            has_package=True,
            file_name=ipa.name,
            allowed_udids=settings.allowed_udids,
        )
        with ipa.open("rb") as package:
            signed = sign_package(
                SignRequest(device_id=device_id, package=package, file_name=ipa.name),
                settings,
            )
    except SignerError as e:
        if json_output:
            typer.echo(json.dumps({"code": e.code, "message": str(e)}))
        else:
            console.print(f"[red]Error ({e.code}):[/red] {e}")
        raise typer.Exit(code=1) from None

    data = {
        "published_name": signed.published_name,
        "output_path": str(signed.work_item.output_path),
        "bundle_identifier": signed.result.bundle_identifier,
        "bundle_version": signed.result.bundle_version,
        "stages": [stage.value for stage in signed.stage_history],
    }
    if json_output:
        typer.echo(json.dumps(data, indent=2))
    else:
        result = signed.result
        console.print(
            f"[green]Signed[/green] {result.bundle_identifier} {result.bundle_version}"
        )
        console.print(f"  Published: {signed.work_item.output_path}")


@app.command()
def manifest(
    bundle_id: Annotated[str, typer.Argument(help="Bundle identifier")],
    bundle_version: Annotated[str, typer.Argument(help="Bundle version")],
    ipa_file_name: Annotated[str, typer.Argument(help="Published file name")],
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", help="Public base URL (defaults to config)"),
    ] = None,
) -> None:
    """Print the OTA manifest for a published package."""
    settings = get_settings()
    effective_base = base_url or settings.base_url
    if not effective_base:
        console.print("[red]Error:[/red] no base URL configured; pass --base-url")
        raise typer.Exit(code=1)

    document = build_manifest(
        published_url(effective_base, ipa_file_name),
        bundle_id,
        bundle_version,
        bundle_id,
    )
    typer.echo(document, nl=False)


@app.command()
def prune(
    max_age: Annotated[
        int | None,
        typer.Option("--max-age", help="Minimum age in seconds (0 removes all)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Delete old published packages."""
    settings = get_settings()
    effective_age = settings.published_max_age if max_age is None else max_age
    removed = prune_published(settings.public_dir, effective_age)

    if json_output:
        typer.echo(json.dumps({"removed": [p.name for p in removed]}))
    else:
        console.print(f"Removed {len(removed)} published file(s)")
        for path in removed:
            console.print(f"  {path.name}")


if __name__ == "__main__":
    app()
