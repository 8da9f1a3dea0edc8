"""
ocipush.cli.registry_cmd — push targets in ~/.ocipush/config.yaml.

A configured name can be given to `ocipush push --registry`; the
default one is used when --registry is omitted.

  ocipush registry add ghcr ghcr.io/myorg --default
  ocipush registry add lab localhost:5000 --insecure
  ocipush registry add scratch oci://local
  ocipush registry list
  ocipush registry remove lab
  ocipush registry login ghcr.io -u USERNAME -p TOKEN
"""

import re
import sys

import click


# Names must not be mistaken for registry URLs by `push --registry`
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def _kind(url: str) -> str:
    from ocipush.oci.client import _is_remote_registry
    return "remote" if _is_remote_registry(url) else "filesystem"


@click.group("registry")
def registry_cmd():
    """Manage the registries images are pushed to."""
    pass


@registry_cmd.command("login")
@click.argument("hostname")
@click.option("--username", "-u", default=None, help="Registry username")
@click.option("--password", "-p", default=None,
              help="Password or access token (or use --password-stdin)")
@click.option("--password-stdin", is_flag=True,
              help="Read the password from stdin")
def registry_login(hostname, username, password, password_stdin):
    """Store credentials used when pushing to a remote registry.

    HOSTNAME may also be a configured registry name.

    \b
    Examples:
      ocipush registry login ghcr.io -u USERNAME -p ghp_TOKEN
      echo $CI_TOKEN | ocipush registry login ghcr -u ci --password-stdin
    """
    from ocipush.oci.client import _registry_host, login
    from ocipush.oci.config import load_config

    cfg = load_config()
    url = cfg.resolve_registry(hostname)
    if _kind(url) == "filesystem":
        click.echo(f"Registry '{url}' is a filesystem registry; no login needed.")
        return
    host = _registry_host(url)

    if password_stdin:
        password = sys.stdin.readline().strip()
    if not username:
        username = click.prompt("Username")
    if not password:
        password = click.prompt("Password/Token", hide_input=True)

    try:
        login(host, username, password, insecure=cfg.is_insecure(url))
    except Exception as e:
        click.echo(f"Error: Login failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Logged in to {host}")


@registry_cmd.command("add")
@click.argument("name")
@click.argument("url")
@click.option("--default", "is_default", is_flag=True,
              help="Push here when --registry is omitted")
@click.option("--insecure", is_flag=True,
              help="Talk plain HTTP to this registry")
def registry_add(name, url, is_default, insecure):
    """Register a push target under NAME and allow it."""
    from ocipush.oci.config import load_config, save_config, RegistryConfig

    if not _NAME_RE.match(name):
        click.echo(
            f"Error: Invalid registry name '{name}': use letters, digits, '-' or '_'.",
            err=True,
        )
        sys.exit(1)

    cfg = load_config()

    if is_default:
        for reg in cfg.registries.values():
            reg.default = False

    cfg.registries[name] = RegistryConfig(
        name=name, url=url, default=is_default, insecure=insecure,
    )
    if url not in cfg.allowed_registries:
        cfg.allowed_registries.append(url)
    save_config(cfg)

    flags = [_kind(url)]
    if insecure:
        flags.append("insecure")
    if is_default:
        flags.append("default")
    click.echo(f"✓ Registry '{name}' added: {url} ({', '.join(flags)})")


@registry_cmd.command("list")
def registry_list():
    """Show configured registries; * marks the default."""
    from ocipush.oci.config import load_config

    cfg = load_config()
    if not cfg.registries:
        click.echo("No registries configured.")
        click.echo("Run: ocipush registry add <name> <url> --default")
        return

    default = cfg.default_registry()
    click.echo(f"{'':2s}{'NAME':16s} {'KIND':11s} URL")
    for name, reg in cfg.registries.items():
        marker = "* " if default is not None and default.name == name else "  "
        insecure = "  (insecure)" if reg.insecure else ""
        click.echo(f"{marker}{name:16s} {_kind(reg.url):11s} {reg.url}{insecure}")

    if cfg.allowed_registries:
        click.echo("\nAllowed registries:")
        for url in cfg.allowed_registries:
            click.echo(f"  ✓ {url}")


@registry_cmd.command("remove")
@click.argument("name")
def registry_remove(name):
    """Forget a registry and drop it from the allowed list."""
    from ocipush.oci.config import load_config, save_config

    cfg = load_config()
    if name not in cfg.registries:
        click.echo(f"Registry '{name}' not found.", err=True)
        sys.exit(1)

    removed = cfg.registries.pop(name)
    still_used = any(r.url == removed.url for r in cfg.registries.values())
    if removed.url in cfg.allowed_registries and not still_used:
        cfg.allowed_registries.remove(removed.url)
    save_config(cfg)

    click.echo(f"✓ Registry '{name}' removed.")
    new_default = cfg.default_registry()
    if removed.default and new_default is not None:
        click.echo(f"Default registry is now '{new_default.name}'.")
