# deployer/cli/commands/config.py

"""
Configuration CLI Commands

Validate indexer configuration documents and preview what the backends
would create for them, without starting anything.
"""

import click
import msgspec
import yaml
from pathlib import Path

from ...errors import ConfigError
from ...translate import translate, render_manifests, render_project
from ...types import IndexerConfig
from ...translate.networks import get_network

PREVIEW_ID = "idx-preview"


def load_config_document(path: Path) -> bytes:
    """Read an indexer config file as JSON bytes. YAML files are converted."""
    raw = path.read_bytes()
    if path.suffix.lower() in ('.yaml', '.yml'):
        try:
            document = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigError.malformed(f"Invalid YAML in {path}: {e}")
        return msgspec.json.encode(document)
    return raw


def load_config(path: Path) -> IndexerConfig:
    try:
        return translate(load_config_document(path))
    except ConfigError as e:
        raise click.ClickException(f"{e.reason}: {e.detail}")


@click.command('validate')
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(config_file):
    """Validate an indexer configuration file

    Examples:
        validate indexer.json
        validate indexer.yaml
    """
    config = load_config(config_file)
    network = get_network(config.network_id)

    click.echo(f"✓ {config.name} is valid")
    click.echo(f"  Network: {network.name if network else config.network_id} ({config.network_id})")
    click.echo(f"  Start block: {config.start_block}")
    click.echo(f"  Source: {config.rpc_url or network.hypersync_url}")
    for contract in config.contracts:
        click.echo(f"  {contract.name} @ {contract.address}: {', '.join(contract.events)}")


@click.command('render-manifests')
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--id', 'instance_id', default=PREVIEW_ID, show_default=True,
              help='Instance id used for naming and labels')
@click.pass_context
def render_manifests_command(ctx, config_file, instance_id):
    """Print the Deployment and Service for a config as YAML"""
    config = load_config(config_file)
    settings = ctx.obj['settings']

    manifests = render_manifests(config, instance_id, settings.cluster)
    click.echo(yaml.safe_dump_all([manifests.deployment, manifests.service], sort_keys=False), nl=False)


@click.command('render-project')
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output', '-o', type=click.Path(file_okay=False, path_type=Path),
              help='Directory to write the project into (lists files when omitted)')
@click.option('--id', 'instance_id', default=PREVIEW_ID, show_default=True,
              help='Instance id written into the project')
def render_project_command(config_file, output, instance_id):
    """Generate the engine project for a config"""
    config = load_config(config_file)
    files = render_project(config, instance_id)

    if output is None:
        for relative in sorted(files):
            click.echo(relative)
        return

    for relative, content in files.items():
        target = output / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding='utf-8')

    click.echo(f"✓ Wrote {len(files)} files to {output}")
