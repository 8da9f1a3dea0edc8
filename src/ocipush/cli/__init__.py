"""
ocipush.cli — CLI entry point.

Commands:
  ocipush push --archivepath <tar> [flags]   — Push an OCI archive
  ocipush registry add|list|remove|login     — Registry management
"""

import click

from ocipush.cli.push_cmd import push_cmd
from ocipush.cli.registry_cmd import registry_cmd


@click.group()
@click.version_option(package_name="ocipush")
def main():
    """ocipush — push OCI image archives without a container engine."""
    pass


main.add_command(push_cmd, "push")
main.add_command(registry_cmd, "registry")
