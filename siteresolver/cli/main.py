"""
Main CLI entry point for the Official Website Resolver.
"""

import click

from siteresolver import __version__
from siteresolver.cli.commands import config_commands, discover, generate, verify


@click.group()
@click.version_option(version=__version__, message='Official Website Resolver v%(version)s')
@click.option('--config', '-c', 'config_path', default='config/config.yaml', show_default=True,
              help='Path to the YAML configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Official Website Resolver - find and verify the official website of a business."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['verbose'] = verbose


main.add_command(discover)
main.add_command(verify)
main.add_command(generate)
main.add_command(config_commands)


if __name__ == '__main__':
    main()
