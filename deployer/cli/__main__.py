# deployer/cli/__main__.py

"""
Deployer CLI

Usage: python -m deployer.cli [command] [options]
"""

import click
import msgspec
import yaml
from pathlib import Path

from ..core.logging import DeployerLogger
from ..core.settings import DeployerSettings


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              envvar='DEPLOYER_CONFIG', help='Deployer settings file (YAML)')
@click.pass_context
def cli(ctx, verbose, config_path):
    """Indexer deployer - translate, launch and manage indexers

    Indexers run either as local engine processes or as a Deployment and
    Service in a Kubernetes cluster.
    """
    ctx.ensure_object(dict)

    try:
        if config_path:
            settings = DeployerSettings.from_file(config_path)
        else:
            settings = DeployerSettings.from_env()
    except (OSError, ValueError, yaml.YAMLError, msgspec.ValidationError) as e:
        raise click.ClickException(f"Could not load settings: {e}")

    ctx.obj['verbose'] = verbose
    ctx.obj['settings'] = settings

    DeployerLogger.configure(
        log_dir=settings.logging.log_path,
        log_level="DEBUG" if verbose else settings.logging.log_level,
        console_enabled=True,
        file_enabled=settings.logging.file_enabled,
        structured_format=settings.logging.structured_format,
    )


from .commands.config import validate, render_manifests_command, render_project_command
from .commands.runtime import run, serve

cli.add_command(validate)
cli.add_command(render_manifests_command)
cli.add_command(render_project_command)
cli.add_command(run)
cli.add_command(serve)


if __name__ == '__main__':
    cli()
