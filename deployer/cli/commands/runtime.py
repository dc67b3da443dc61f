# deployer/cli/commands/runtime.py

"""
Runtime CLI Commands

Run a single indexer in the foreground, or serve the job API.
"""

import asyncio
import click
from pathlib import Path
from typing import Optional

from ... import create_manager
from ...errors import DeployerError
from ...manager import IndexerManager
from ...types import DeploymentMode, IndexerConfig, RunState
from .config import load_config


async def _run_indexer(manager: IndexerManager, config: IndexerConfig,
                       mode: Optional[DeploymentMode], interval: float) -> None:
    try:
        instance = await manager.spawn(config, mode)
        click.echo(f"✓ {instance.name} running as {instance.id} ({instance.mode.value})")
        click.echo("Press Ctrl-C to stop")

        last_state = instance.state
        while True:
            await asyncio.sleep(interval)
            instance = await manager.status(instance.id)
            if instance.state != last_state:
                click.echo(f"  {instance.id}: {last_state.value} -> {instance.state.value}")
                last_state = instance.state
            if instance.state == RunState.CRASHED:
                click.echo(f"  Last error: {instance.last_error or 'engine not running'}", err=True)
    finally:
        await manager.shutdown()


@click.command('run')
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--mode', type=click.Choice([m.value for m in DeploymentMode]),
              help='Deployment mode (defaults to the configured mode)')
@click.option('--interval', type=float, default=10.0, show_default=True,
              help='Seconds between status checks')
@click.pass_context
def run(ctx, config_file, mode, interval):
    """Spawn an indexer and keep it running until interrupted

    Examples:
        run indexer.json
        run indexer.yaml --mode cluster
    """
    config = load_config(config_file)
    container = create_manager(settings=ctx.obj['settings'])
    manager = container.get(IndexerManager)

    try:
        asyncio.run(_run_indexer(manager, config, DeploymentMode(mode) if mode else None, interval))
    except KeyboardInterrupt:
        click.echo("✓ Stopped")
    except DeployerError as e:
        raise click.ClickException(f"{e.kind}.{e.reason}: {e.detail}")


@click.command('serve')
@click.option('--host', default='127.0.0.1', show_default=True, help='Bind address')
@click.option('--port', type=int, default=8000, show_default=True, help='Bind port')
@click.pass_context
def serve(ctx, host, port):
    """Serve the job API over HTTP"""
    import uvicorn
    from api.main import create_app

    container = create_manager(settings=ctx.obj['settings'])
    uvicorn.run(create_app(container), host=host, port=port, log_config=None)
