"""
ocipush.cli.push_cmd — ocipush push command.

  ocipush push --archivepath app.tar --registry ghcr.io/myorg
  ocipush push --archivepath app.tar --registry dev --repository myapp -t 1.0 -t latest
  ocipush push --archivepath app.tar --imagetags 1.0,latest
"""

import sys
import threading

import click


CANCELLED_EXIT_CODE = 130


@click.command("push")
@click.option("--archivepath", "-a", "archive_path", required=True,
              type=click.Path(dir_okay=False),
              help="Path to the OCI image archive to push")
@click.option("--registry", "-r", default=None,
              help="Registry to push to (URL or configured name)")
@click.option("--repository", default=None,
              help="Repository override (default: from archive annotations)")
@click.option("--imagetags", "-t", "image_tags", multiple=True,
              help="Tag override; repeat or comma-separate for several")
@click.option("--verbose", "-v", is_flag=True, help="Debug output")
def push_cmd(archive_path, registry, repository, image_tags, verbose):
    """Push an existing OCI archive to a remote registry."""
    from ocipush.errors import PushCancelled
    from ocipush.oci.config import load_config
    from ocipush.push.pusher import ArchivePusher
    from ocipush.utils import setup_logging, split_tags

    setup_logging(verbose)
    cfg = load_config()

    # Resolve registry
    registry_url = cfg.resolve_registry(registry)
    if registry_url is None:
        click.echo(
            "Error: No registry specified and no default configured.\n"
            "Run: ocipush registry add default <url>",
            err=True,
        )
        sys.exit(1)

    if not cfg.is_registry_allowed(registry_url):
        click.echo(
            f"Error: Registry '{registry_url}' is not in the allowed registries.",
            err=True,
        )
        sys.exit(1)

    pusher = ArchivePusher(
        archive_path,
        registry_url,
        repository=repository,
        tags=split_tags(image_tags),
        config=cfg,
    )

    cancel_event = threading.Event()
    try:
        outcome = pusher.push(cancel_event)
    except (PushCancelled, KeyboardInterrupt):
        cancel_event.set()
        click.echo("Push cancelled.", err=True)
        sys.exit(CANCELLED_EXIT_CODE)

    if outcome.pushed:
        for destination in outcome.pushed:
            click.echo(f"✓ Pushed {destination} to {registry_url}", err=True)
    elif not outcome.has_errors:
        click.echo("Nothing to push.", err=True)

    sys.exit(outcome.exit_code)
