"""
ocipush.oci.config — Global config management.

~/.ocipush/config.yaml:

    registries:
      default:
        url: ghcr.io
        default: true
      dev:
        url: localhost:5000
        insecure: true

    security:
      allowed_registries:
        - ghcr.io
        - localhost:5000

    temp_root: /var/tmp/ocipush
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


OCIPUSH_HOME = Path.home() / ".ocipush"

_LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "[::1]")


@dataclass
class RegistryConfig:
    """A single registry definition."""
    name: str
    url: str
    default: bool = False
    insecure: bool = False


@dataclass
class OcipushConfig:
    """Global ocipush config."""
    registries: dict[str, RegistryConfig] = field(default_factory=dict)
    allowed_registries: list[str] = field(default_factory=list)
    temp_root: Path | None = None

    def default_registry(self) -> RegistryConfig | None:
        for r in self.registries.values():
            if r.default:
                return r
        # Fall back to the first registry
        if self.registries:
            return next(iter(self.registries.values()))
        return None

    def resolve_registry(self, name_or_url: str | None) -> str | None:
        """Map a configured registry name to its URL.

        Anything that is not a configured name is returned as-is;
        None means "use the default registry".
        """
        if not name_or_url:
            default = self.default_registry()
            return default.url if default else None
        if name_or_url in self.registries:
            return self.registries[name_or_url].url
        return name_or_url

    def is_registry_allowed(self, url: str) -> bool:
        """Check if registry URL is in the whitelist."""
        if not self.allowed_registries:
            return True  # Empty whitelist allows all
        normalized = url.rstrip("/")
        return any(
            normalized.startswith(allowed.rstrip("/"))
            for allowed in self.allowed_registries
        )

    def is_insecure(self, url: str) -> bool:
        """Whether the registry should be contacted over plain HTTP."""
        normalized = url.rstrip("/")
        for reg in self.registries.values():
            if reg.insecure and reg.url.rstrip("/") == normalized:
                return True
        host = normalized.split("://", 1)[-1].split("/", 1)[0]
        hostname = host.rsplit(":", 1)[0] if not host.endswith("]") else host
        return hostname in _LOOPBACK_HOSTS

    def extraction_root(self) -> Path:
        """Process-wide root for temporary extraction directories."""
        if self.temp_root is not None:
            return self.temp_root
        return Path(tempfile.gettempdir()) / "ocipush"


def config_path() -> Path:
    return OCIPUSH_HOME / "config.yaml"


def load_config() -> OcipushConfig:
    """Read ~/.ocipush/config.yaml."""
    cp = config_path()
    if not cp.exists():
        return OcipushConfig()

    with open(cp) as f:
        data = yaml.safe_load(f) or {}

    cfg = OcipushConfig()

    # Registries
    for name, info in data.get("registries", {}).items():
        if isinstance(info, dict):
            cfg.registries[name] = RegistryConfig(
                name=name,
                url=info.get("url", ""),
                default=info.get("default", False),
                insecure=info.get("insecure", False),
            )

    # Security
    security = data.get("security", {})
    cfg.allowed_registries = security.get("allowed_registries", [])

    temp_root = data.get("temp_root")
    if temp_root:
        cfg.temp_root = Path(temp_root).expanduser()

    return cfg


def save_config(cfg: OcipushConfig) -> None:
    """Write ~/.ocipush/config.yaml."""
    OCIPUSH_HOME.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {}

    if cfg.registries:
        data["registries"] = {}
        for name, reg in cfg.registries.items():
            entry: dict[str, Any] = {"url": reg.url}
            if reg.default:
                entry["default"] = True
            if reg.insecure:
                entry["insecure"] = True
            data["registries"][name] = entry

    if cfg.allowed_registries:
        data["security"] = {
            "allowed_registries": cfg.allowed_registries,
        }

    if cfg.temp_root is not None:
        data["temp_root"] = str(cfg.temp_root)

    with open(config_path(), "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
