"""CLI commands for assetport."""

import asyncio
import logging
import sys
from pathlib import Path

import click

from assetport.config import build_settings, get_settings, load_app_config
from assetport.lib import observability
from assetport.lib.exceptions import StorageError, UnsupportedOperationError
from assetport.lib.storage.manager import StorageManager

store_option = click.option(
    "--store", default=None, help="Named store from the config (defaults to storage.default)"
)


@click.group()
@click.version_option(package_name="assetport")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the YAML config (defaults to $ASSETPORT_CONFIG or ./assetport.yaml)",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level (defaults to log_level from the config)",
)
@click.pass_context
def cli(ctx, config_path, log_level):
    """assetport - browse and manage assets across storage backends."""
    ctx.obj = {"config_path": config_path, "log_level": log_level}


def _fail(message):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load_settings(ctx):
    options = ctx.obj or {}
    config_path = options.get("config_path")
    try:
        if config_path is not None:
            settings = build_settings(load_app_config(config_path))
        else:
            settings = get_settings()
    except (FileNotFoundError, StorageError) as exc:
        _fail(str(exc))
    logging.basicConfig(
        level=(options.get("log_level") or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    observability.configure(settings.logfire)
    return settings


def _run(ctx, store, action):
    """Open *store*, run ``action(provider)`` and close the store again."""
    settings = _load_settings(ctx)

    async def _main():
        manager = StorageManager(settings.storage)
        try:
            provider = await manager.get(store)
            return await action(provider)
        finally:
            await manager.close()

    try:
        return asyncio.run(_main())
    except UnsupportedOperationError as exc:
        _fail(f"The '{store or settings.storage.default}' store does not support {exc.operation}.")
    except StorageError as exc:
        _fail(str(exc))
    except KeyError as exc:
        _fail(exc.args[0])


@cli.command()
@store_option
@click.pass_context
def check(ctx, store):
    """Connect to a store and report its capabilities."""

    async def action(provider):
        return provider

    provider = _run(ctx, store, action)
    caps = ", ".join(sorted(cap.value for cap in provider.capabilities))
    click.echo(f"{provider.kind} ({provider.storage_type.value}): ok")
    click.echo(f"capabilities: {caps}")


@cli.command("ls")
@click.argument("path", required=False)
@click.option("--ext", default=None, help="Only list keys ending with this suffix")
@store_option
@click.pass_context
def list_files(ctx, path, ext, store):
    """List keys under PATH."""

    async def action(provider):
        return await provider.list_files(path, ext)

    for key in _run(ctx, store, action):
        click.echo(key)


@cli.command()
@click.argument("key")
@click.option("--binary", is_flag=True, help="Write raw bytes to stdout")
@store_option
@click.pass_context
def cat(ctx, key, binary, store):
    """Print the contents of KEY."""

    async def action(provider):
        if binary:
            return await provider.read_binary(key)
        return await provider.read_text(key)

    content = _run(ctx, store, action)
    if binary:
        click.get_binary_stream("stdout").write(content)
    else:
        click.echo(content, nl=False)


@cli.command()
@click.argument("key")
@click.argument("source", type=click.File("rb"))
@store_option
@click.pass_context
def put(ctx, key, source, store):
    """Upload SOURCE (a file or - for stdin) to KEY."""
    data = source.read()

    async def action(provider):
        await provider.write_binary(key, data)

    _run(ctx, store, action)
    click.echo(f"Wrote {len(data)} bytes to {key}")


@cli.command()
@click.argument("key")
@store_option
@click.pass_context
def rm(ctx, key, store):
    """Delete KEY."""

    async def action(provider):
        await provider.delete_file(key)

    _run(ctx, store, action)
    click.echo(f"Deleted {key}")


@cli.command()
@click.argument("path", required=False)
@store_option
@click.pass_context
def containers(ctx, path, store):
    """List containers visible from the store root."""

    async def action(provider):
        return await provider.list_containers(path)

    for name in _run(ctx, store, action):
        click.echo(name)


@cli.command()
@click.argument("name")
@store_option
@click.pass_context
def mkcontainer(ctx, name, store):
    """Create container NAME."""

    async def action(provider):
        await provider.create_container(name)

    _run(ctx, store, action)
    click.echo(f"Created container {name}")


@cli.command()
@click.argument("name")
@store_option
@click.pass_context
def rmcontainer(ctx, name, store):
    """Delete container NAME and everything in it."""

    async def action(provider):
        await provider.delete_container(name)

    _run(ctx, store, action)
    click.echo(f"Deleted container {name}")


@cli.command()
@click.option("--container", default=None, help="Discover assets in another container")
@store_option
@click.pass_context
def assets(ctx, container, store):
    """List recognized assets (images, videos, TFRecords)."""

    async def action(provider):
        return await provider.get_assets(container)

    for asset in _run(ctx, store, action):
        click.echo(f"{asset.type.name.lower()}\t{asset.name}\t{asset.path}")
