"""
tests/test_oci.py — OCI config and registry client tests.

Config, whitelist, registry routing, filesystem registry,
remote registry upload sequence (oras client faked).
"""

import json
import threading

import pytest
import yaml

from conftest import write_layout
from ocipush.errors import PushCancelled
from ocipush.oci.client import (
    LocalRegistry, OCIError, RegistryProtocolError, RemoteRegistry,
    _is_remote_registry, _registry_host, _registry_to_oras_target,
    _resolve_registry_path, registry_for,
)
from ocipush.oci.config import OcipushConfig, RegistryConfig
from ocipush.push.resolver import Destination


# ─────────────────────────────────────────────
# CONFIG
# ─────────────────────────────────────────────
class TestConfig:
    def test_empty_config(self):
        from ocipush.oci.config import load_config
        cfg = load_config()
        assert cfg.registries == {}
        assert cfg.allowed_registries == []
        assert cfg.temp_root is None

    def test_save_and_load(self, tmp_path):
        from ocipush.oci.config import load_config, save_config
        cfg = load_config()
        cfg.registries["dev"] = RegistryConfig(
            name="dev", url="localhost:5000", default=True, insecure=True,
        )
        cfg.allowed_registries = ["localhost:5000"]
        cfg.temp_root = tmp_path / "scratch"
        save_config(cfg)

        cfg2 = load_config()
        assert cfg2.registries["dev"].url == "localhost:5000"
        assert cfg2.registries["dev"].default is True
        assert cfg2.registries["dev"].insecure is True
        assert cfg2.allowed_registries == ["localhost:5000"]
        assert cfg2.temp_root == tmp_path / "scratch"

    def test_config_file_format(self, tmp_path):
        from ocipush.oci import config
        config.OCIPUSH_HOME.mkdir(parents=True)
        (config.OCIPUSH_HOME / "config.yaml").write_text(yaml.dump({
            "registries": {"ghcr": {"url": "ghcr.io/myorg", "default": True}},
            "security": {"allowed_registries": ["ghcr.io"]},
            "temp_root": str(tmp_path / "t"),
        }))
        cfg = config.load_config()
        assert cfg.default_registry().name == "ghcr"
        assert cfg.extraction_root() == tmp_path / "t"

    def test_default_registry(self):
        cfg = OcipushConfig(registries={
            "a": RegistryConfig(name="a", url="a.io"),
            "b": RegistryConfig(name="b", url="b.io", default=True),
        })
        assert cfg.default_registry().name == "b"

    def test_default_registry_falls_back_to_first(self):
        cfg = OcipushConfig(registries={
            "a": RegistryConfig(name="a", url="a.io"),
        })
        assert cfg.default_registry().name == "a"

    def test_resolve_registry(self):
        cfg = OcipushConfig(registries={
            "dev": RegistryConfig(name="dev", url="localhost:5000", default=True),
        })
        assert cfg.resolve_registry("dev") == "localhost:5000"
        assert cfg.resolve_registry("ghcr.io") == "ghcr.io"
        assert cfg.resolve_registry(None) == "localhost:5000"
        assert OcipushConfig().resolve_registry(None) is None

    def test_is_insecure(self):
        cfg = OcipushConfig(registries={
            "lab": RegistryConfig(name="lab", url="registry.lab:80", insecure=True),
        })
        assert cfg.is_insecure("registry.lab:80")
        assert cfg.is_insecure("localhost:5000")
        assert cfg.is_insecure("127.0.0.1:5000/team")
        assert not cfg.is_insecure("ghcr.io")

    def test_extraction_root_default(self):
        import tempfile
        from pathlib import Path
        assert OcipushConfig().extraction_root() == Path(tempfile.gettempdir()) / "ocipush"


# ─────────────────────────────────────────────
# WHITELIST
# ─────────────────────────────────────────────
class TestWhitelist:
    def test_blocked_registry(self):
        cfg = OcipushConfig(allowed_registries=["trusted.io"])
        assert not cfg.is_registry_allowed("evil.com/images")

    def test_allowed_registry(self):
        cfg = OcipushConfig(allowed_registries=["ghcr.io/myorg"])
        assert cfg.is_registry_allowed("ghcr.io/myorg/images")
        assert not cfg.is_registry_allowed("ghcr.io/other")

    def test_empty_whitelist_allows_all(self):
        assert OcipushConfig().is_registry_allowed("anything.io")


# ─────────────────────────────────────────────
# ROUTING
# ─────────────────────────────────────────────
class TestRouting:
    @pytest.mark.parametrize("url", [
        "oci://local", "oci://local/dev", "oci:///srv/registry",
        "file:///srv/registry", "/srv/registry",
    ])
    def test_local(self, url):
        assert not _is_remote_registry(url)
        assert isinstance(registry_for(url), LocalRegistry)

    @pytest.mark.parametrize("url", [
        "ghcr.io", "ghcr.io/myorg", "oci://harbor.internal/team", "localhost:5000",
    ])
    def test_remote(self, url):
        assert _is_remote_registry(url)
        assert isinstance(registry_for(url), RemoteRegistry)

    def test_insecure_from_config(self):
        client = registry_for("localhost:5000", OcipushConfig())
        assert client.insecure is True
        assert registry_for("ghcr.io", OcipushConfig()).insecure is False

    def test_oras_target(self):
        assert _registry_to_oras_target("oci://ghcr.io/myorg/", "app", "1.0") == "ghcr.io/myorg/app:1.0"
        assert _registry_to_oras_target("localhost:5000", "team/app", "dev") == "localhost:5000/team/app:dev"
        assert _registry_host("https://ghcr.io/myorg") == "ghcr.io"

    def test_registry_path(self, tmp_path):
        from ocipush.oci import config
        assert _resolve_registry_path("oci://local") == config.OCIPUSH_HOME / "registry" / "local"
        assert _resolve_registry_path(f"oci://{tmp_path}") == tmp_path
        assert _resolve_registry_path(f"file://{tmp_path}") == tmp_path


# ─────────────────────────────────────────────
# FILESYSTEM REGISTRY
# ─────────────────────────────────────────────
class TestLocalRegistry:
    def test_push(self, tmp_path):
        layout = write_layout(tmp_path / "layout", ["app:1.0", "app:latest"], same_image=True)
        registry = LocalRegistry(f"oci://{tmp_path / 'reg'}")
        dest = Destination("app", ("1.0", "latest"), registry.registry_url, registry)

        refs = registry.push(layout, dest)
        assert refs == [
            f"oci://{tmp_path / 'reg'}/app:1.0",
            f"oci://{tmp_path / 'reg'}/app:latest",
        ]
        repo = registry.repository_path("app")
        assert json.loads((repo / "oci-layout").read_text())["imageLayoutVersion"] == "1.0.0"
        assert registry.list_tags("app") == ["1.0", "latest"]

    def test_oci_local_lives_under_home(self, tmp_path):
        from ocipush.oci import config
        layout = write_layout(tmp_path / "layout", ["app:1"])
        registry = LocalRegistry("oci://local")
        registry.push(layout, Destination("app", ("1",), "oci://local", registry))
        assert (config.OCIPUSH_HOME / "registry" / "local" / "app" / "index.json").exists()

    def test_ambiguous_image_is_a_protocol_error(self, tmp_path):
        layout = write_layout(tmp_path / "layout", ["a:1", "b:2"])
        registry = LocalRegistry(f"oci://{tmp_path / 'reg'}")
        dest = Destination("other", ("prod",), registry.registry_url, registry)
        with pytest.raises(RegistryProtocolError, match="Cannot decide"):
            registry.push(layout, dest)

    def test_missing_index(self, tmp_path):
        registry = LocalRegistry(f"oci://{tmp_path / 'reg'}")
        dest = Destination("app", ("1",), registry.registry_url, registry)
        with pytest.raises(OCIError, match="Cannot read archive index"):
            registry.push(tmp_path, dest)

    def test_cancelled(self, tmp_path):
        layout = write_layout(tmp_path / "layout", ["app:1"])
        registry = LocalRegistry(f"oci://{tmp_path / 'reg'}")
        event = threading.Event()
        event.set()
        with pytest.raises(PushCancelled):
            registry.push(layout, Destination("app", ("1",), "", registry), event)
        assert registry.list_tags("app") == []


# ─────────────────────────────────────────────
# REMOTE REGISTRY (oras faked)
# ─────────────────────────────────────────────
class FakeResponse:
    def __init__(self, status_code=201, text=""):
        self.status_code = status_code
        self.text = text


class FakeContainer:
    def __init__(self, target):
        self.target = target
        self.registry = target.split("/", 1)[0]
        self.name = target.split("/", 1)[1].rsplit(":", 1)[0]

    def manifest_url(self, tag=None):
        return f"{self.registry}/v2/{self.name}/manifests/{tag}"

    def __str__(self):
        return self.target


class FakeRemote:
    prefix = "https"

    def __init__(self, blob_status=201, manifest_status=201):
        self.blob_status = blob_status
        self.manifest_status = manifest_status
        self.calls = []

    def get_container(self, target):
        return FakeContainer(target)

    def upload_blob(self, blob, container, layer):
        self.calls.append(("blob", layer["digest"]))
        return FakeResponse(self.blob_status)

    def do_request(self, url, method="GET", data=None, headers=None):
        self.calls.append(("manifest", url, headers["Content-Type"]))
        return FakeResponse(self.manifest_status, text="MANIFEST_INVALID")


class FakeOrasClient:
    def __init__(self, remote):
        self.remote = remote


class TestRemoteRegistry:
    def _patch(self, monkeypatch, remote):
        seen = {}

        def fake_client(hostname, insecure=False):
            seen["hostname"] = hostname
            seen["insecure"] = insecure
            return FakeOrasClient(remote)

        monkeypatch.setattr("ocipush.oci.client._get_oras_client", fake_client)
        return seen

    def test_upload_sequence(self, tmp_path, monkeypatch):
        layout = write_layout(tmp_path / "layout", ["app:1.0", "app:latest"], same_image=True)
        remote = FakeRemote()
        seen = self._patch(monkeypatch, remote)
        client = RemoteRegistry("localhost:5000", insecure=True)

        refs = client.push(layout, Destination("app", ("1.0", "latest"), "localhost:5000", client))
        assert refs == ["localhost:5000/app:1.0", "localhost:5000/app:latest"]
        assert seen == {"hostname": "localhost:5000", "insecure": True}

        kinds = [c[0] for c in remote.calls]
        # config + layer once, then one manifest per tag
        assert kinds == ["blob", "blob", "manifest", "manifest"]
        assert remote.calls[2][1] == "https://localhost:5000/v2/app/manifests/1.0"
        assert remote.calls[3][1] == "https://localhost:5000/v2/app/manifests/latest"
        assert remote.calls[2][2] == "application/vnd.oci.image.manifest.v1+json"

    def test_manifest_rejected(self, tmp_path, monkeypatch):
        layout = write_layout(tmp_path / "layout", ["app:1"])
        self._patch(monkeypatch, FakeRemote(manifest_status=400))
        client = RemoteRegistry("ghcr.io/myorg")
        with pytest.raises(RegistryProtocolError, match="status 400: MANIFEST_INVALID"):
            client.push(layout, Destination("app", ("1",), "ghcr.io/myorg", client))

    def test_blob_rejected_by_oras(self, tmp_path, monkeypatch):
        layout = write_layout(tmp_path / "layout", ["app:1"])
        remote = FakeRemote()

        def reject(blob, container, layer):
            raise ValueError("Issue with upload: Unauthorized")

        remote.upload_blob = reject
        self._patch(monkeypatch, remote)
        client = RemoteRegistry("ghcr.io")
        with pytest.raises(RegistryProtocolError, match="Unauthorized"):
            client.push(layout, Destination("app", ("1",), "ghcr.io", client))

    def test_cancelled_before_upload(self, tmp_path, monkeypatch):
        layout = write_layout(tmp_path / "layout", ["app:1"])
        remote = FakeRemote()
        self._patch(monkeypatch, remote)
        event = threading.Event()
        event.set()
        client = RemoteRegistry("ghcr.io")
        with pytest.raises(PushCancelled):
            client.push(layout, Destination("app", ("1",), "ghcr.io", client), event)
        assert remote.calls == []
