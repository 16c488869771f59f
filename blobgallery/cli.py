"""
BlobGallery Command-Line Interface

Serve the gallery API, and list, upload, download and delete blobs in the
configured container directly from the command line.
"""

import os
import sys
import json
import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

import click
import uvicorn
from pydantic import ValidationError

from . import __version__
from .core.config_manager import CONFIG_FILE_ENV, ConfigManager, GalleryConfig, LogLevel
from .core.logging_config import setup_logging, setup_logging_from_config
from .storage.exceptions import StoreError
from .storage.factory import create_object_store
from .upload.streams import FileInputStream
from .web.service import GalleryService, IncomingFile

T = TypeVar("T")


def _load_config(ctx: click.Context) -> GalleryConfig:
    """
    Load configuration once per invocation, from --config, env and CLI overrides.

    Logging is reconfigured from the loaded section. Log output goes to
    stderr so command output on stdout stays parseable.
    """
    obj = ctx.ensure_object(dict)
    if "config" not in obj:
        overrides: Dict[str, Any] = {}
        if obj.get("log_level"):
            overrides["logging"] = {"level": obj["log_level"].upper()}
        try:
            obj["config"] = ConfigManager().load(obj.get("config_file"), overrides or None)
        except (ValidationError, ValueError, FileNotFoundError) as e:
            click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
            sys.exit(1)
        setup_logging_from_config(obj["config"].logging, stream=sys.stderr)
    return obj["config"]


def _run_with_gallery(ctx: click.Context, action: Callable[[GalleryService], Awaitable[T]]) -> T:
    """Build a store and gallery from configuration, run one action, close the store."""
    config = _load_config(ctx)

    async def run() -> T:
        store = create_object_store(config.storage)
        try:
            return await action(GalleryService(store, config.upload))
        finally:
            await store.close()

    try:
        return asyncio.run(run())
    except StoreError as e:
        click.echo(f"[ERROR] {e.error_code}: {e.message}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="blobgallery")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file (YAML or JSON)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (overrides configuration)",
)
@click.pass_context
def cli(ctx, config_file: Optional[str], log_level: Optional[str]):
    """
    BlobGallery - blob storage gallery with chunked block uploads.

    Serve the web API, or work with the configured container directly.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--host", help="Host to bind to (overrides configuration)")
@click.option("--port", type=int, help="Port to bind to (overrides configuration)")
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload on code changes (development mode)",
)
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int], reload: bool):
    """
    Start the BlobGallery API server.

    Examples:
        blobgallery serve
        blobgallery serve --port 8080
        blobgallery --config gallery.yaml --log-level DEBUG serve
    """
    config = _load_config(ctx)

    bind_host = host or config.server.host
    bind_port = port or config.server.port

    click.echo(f"Starting BlobGallery v{__version__}")
    click.echo(f"Host: {bind_host}:{bind_port}")
    click.echo(f"Backend: {config.storage.backend} (container '{config.storage.container_name}')")
    click.echo()

    try:
        if reload:
            # The reloader builds the app in a fresh process from the environment
            if ctx.obj.get("config_file"):
                os.environ[CONFIG_FILE_ENV] = str(Path(ctx.obj["config_file"]).resolve())
            os.environ["BLOBGALLERY_LOG_LEVEL"] = LogLevel(config.logging.level).value
            os.environ["BLOBGALLERY_HOST"] = bind_host
            os.environ["BLOBGALLERY_PORT"] = str(bind_port)
            uvicorn.run(
                "blobgallery.web.app:create_app",
                host=bind_host,
                port=bind_port,
                log_level=config.logging.level.lower(),
                reload=True,
                factory=True,
            )
        else:
            from .web.app import create_app

            uvicorn.run(
                create_app(config),
                host=bind_host,
                port=bind_port,
                log_level=config.logging.level.lower(),
            )
    except KeyboardInterrupt:
        click.echo("\nShutting down BlobGallery...")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="BlobGallery host")
@click.option("--port", default=8000, show_default=True, type=int, help="BlobGallery port")
def status(host: str, port: int):
    """
    Check a running BlobGallery server through its health endpoint.

    Example:
        blobgallery status --port 8080
    """
    import httpx

    try:
        response = httpx.get(f"http://{host}:{port}/health", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        click.echo(f"[ERROR] BlobGallery is not reachable at {host}:{port}: {e}", err=True)
        sys.exit(1)

    result = response.json()
    click.echo(f"[OK] BlobGallery v{result['version']} is {result['status']}")
    click.echo(f"   Backend:   {result['backend']}")
    click.echo(f"   Container: {result['container']}")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--blocks/--single",
    default=True,
    show_default=True,
    help="Upload through block staging, or in one call per file",
)
@click.option("--block-size", type=int, help="Maximum block size in bytes (overrides configuration)")
@click.pass_context
def upload(ctx, files: Tuple[Path, ...], blocks: bool, block_size: Optional[int]):
    """
    Upload files under fresh random names.

    Examples:
        blobgallery upload photo.png
        blobgallery upload *.jpg --block-size 4194304
        blobgallery upload notes.txt --single
    """
    if block_size is not None:
        if block_size <= 0:
            raise click.BadParameter("must be positive", param_hint="--block-size")
        config = _load_config(ctx)
        upload_config = config.upload.model_copy(update={"max_block_size": block_size})
        ctx.obj["config"] = config.model_copy(update={"upload": upload_config})

    async def action(gallery: GalleryService):
        streams = [FileInputStream.open(path) for path in files]
        try:
            incoming = [
                IncomingFile(filename=path.name, stream=stream)
                for path, stream in zip(files, streams)
            ]
            return await gallery.upload_files(incoming, in_blocks=blocks)
        finally:
            for stream in streams:
                stream.file.close()

    report = _run_with_gallery(ctx, action)

    for result in report.results:
        if result.status == "uploaded":
            click.echo(f"[OK] {result.filename} -> {result.object_name} ({result.size} bytes, {result.block_count} blocks)")
        elif result.status == "skipped":
            click.echo(f"[SKIP] {result.filename} (empty file)")
        else:
            error = result.error or {}
            click.echo(f"[ERROR] {result.filename}: {error.get('code')}: {error.get('message')}", err=True)

    click.echo(
        f"\n{len(report.succeeded)} uploaded, {len(report.skipped)} skipped, {len(report.failed)} failed"
    )
    if not report.all_succeeded:
        sys.exit(1)


@cli.command(name="list")
@click.pass_context
def list_blobs(ctx):
    """List every blob in the container, creating the container if needed."""
    names = _run_with_gallery(ctx, lambda gallery: gallery.list_blobs())

    if not names:
        click.echo("No blobs found.")
        return
    for name in names:
        click.echo(name)


@cli.command()
@click.argument("name")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write the content (default: the blob name in the current directory)",
)
@click.pass_context
def download(ctx, name: str, output: Optional[Path]):
    """
    Download one blob to a file.

    Example:
        blobgallery download 638400000000000000_1f0e.png -o photo.png
    """
    target = output or Path(Path(name).name)

    async def action(gallery: GalleryService) -> int:
        blob = await gallery.open_blob(name)
        written = 0
        with open(target, "wb") as f:
            async for chunk in blob.chunks:
                f.write(chunk)
                written += len(chunk)
        return written

    written = _run_with_gallery(ctx, action)
    click.echo(f"[OK] Downloaded {name} to {target} ({written} bytes)")


@cli.command()
@click.argument("name")
@click.pass_context
def delete(ctx, name: str):
    """Delete one blob."""
    deleted = _run_with_gallery(ctx, lambda gallery: gallery.delete_blob(name))

    if not deleted:
        click.echo(f"[ERROR] Blob not found: {name}", err=True)
        sys.exit(1)
    click.echo(f"[OK] Deleted {name}")


@cli.command(name="delete-all")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def delete_all(ctx, yes: bool):
    """
    Delete every blob in the container.

    [WARN]  This is irreversible.
    """
    if not yes:
        config = _load_config(ctx)
        click.confirm(
            f"[WARN]  Delete ALL blobs in container '{config.storage.container_name}'?",
            abort=True,
        )

    deleted = _run_with_gallery(ctx, lambda gallery: gallery.delete_all())
    click.echo(f"[OK] Deleted {deleted} blob(s)")


@cli.command()
@click.pass_context
def config(ctx):
    """Show the active configuration, with credentials redacted."""
    active = _load_config(ctx)
    click.echo(json.dumps(active.redacted_dump(), indent=2))


def main():
    """Main entry point for the CLI."""
    setup_logging("WARNING", format_type="text", stream=sys.stderr)
    cli(obj={})


if __name__ == "__main__":
    main()
