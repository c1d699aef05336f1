"""OrderLink CLI - Main Entry Point.

Commands:
    serve        - Run the gateway under uvicorn
    init-db      - Create the database schema
    issue-token  - Sign a handshake token and register it as current
"""

import asyncio
import sys
from typing import Optional, Tuple

import click

from . import __version__
from .config import load_config


def _load(config_paths: Tuple[str, ...], debug: bool = False):
    overrides = {"debug": True} if debug else None
    return load_config(paths=list(config_paths) or None, overrides=overrides)


@click.group()
@click.version_option(version=__version__, prog_name="orderlink")
@click.option('--config', '-c', 'config_paths', multiple=True, type=click.Path(exists=True),
              help='YAML/JSON config file (repeatable)')
@click.option('--debug', is_flag=True, help='Debug mode (secrets optional)')
@click.pass_context
def cli(ctx, config_paths: Tuple[str, ...], debug: bool):
    """Real-time order chat and agent location gateway."""
    ctx.ensure_object(dict)
    ctx.obj['config_paths'] = config_paths
    ctx.obj['debug'] = debug


@cli.command('serve')
@click.option('--host', type=str, default=None, help='Host to bind to')
@click.option('--port', type=int, default=None, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
@click.option('--log-level', type=click.Choice(['debug', 'info', 'warning', 'error']), default=None)
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int], reload: bool, log_level: Optional[str]):
    """
    Start the gateway.

    Examples:
      orderlink serve
      orderlink -c orderlink.yaml serve --port=9000
    """
    from .server import OrderLinkServer

    try:
        server = OrderLinkServer(_load(ctx.obj['config_paths'], ctx.obj['debug']))
        server.run(host=host, port=port, reload=reload or None, log_level=log_level)
    except KeyboardInterrupt:
        click.echo()
        click.secho("Server stopped", fg="green")
    except Exception as e:
        click.secho(f"Server error: {e}", fg="red", err=True)
        sys.exit(1)


@cli.command('init-db')
@click.pass_context
def init_db(ctx):
    """Create every table that does not exist yet."""
    from .db import Database, create_schema

    config = _load(ctx.obj['config_paths'], ctx.obj['debug'])

    async def _run():
        db = Database(config.database.url)
        await db.connect()
        try:
            return await create_schema(db)
        finally:
            await db.disconnect()

    try:
        created = asyncio.run(_run())
    except Exception as e:
        click.secho(f"Schema creation failed: {e}", fg="red", err=True)
        sys.exit(1)

    if created:
        for table in created:
            click.echo(f"  created {table}")
    click.secho(f"Schema ready on {config.database.url}", fg="green")


@cli.command('issue-token')
@click.argument('subject')
@click.option('--admin', is_flag=True, help='Admin token (subject is the admin email)')
@click.pass_context
def issue_token(ctx, subject: str, admin: bool):
    """
    Sign a token for SUBJECT and store it as the current token.

    With the memory cache backend the stored token only lives as long
    as this command; use the redis backend to share it with the gateway.
    """
    from .server import OrderLinkServer

    config = _load(ctx.obj['config_paths'], ctx.obj['debug'])
    server = OrderLinkServer(config)

    async def _run():
        await server.cache.initialize()
        try:
            return await server.issue_token(subject, admin=admin)
        finally:
            await server.cache.shutdown()

    try:
        token = asyncio.run(_run())
    except Exception as e:
        click.secho(f"Token issue failed: {e}", fg="red", err=True)
        sys.exit(1)

    if config.cache.backend == "memory":
        click.secho("warning: memory cache backend, token not shared with the gateway", fg="yellow", err=True)
    click.echo(token)


def main():
    """Entry point for `orderlink` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
