"""
ocipush.oci.client — OCI registry clients.

Pushes an extracted OCI image layout to a registry.

Supports two backends:
  1. Local filesystem registry (oci://local, oci:///path, file:///path)
     — one OCI image layout per repository, for development/testing
  2. Remote OCI registries (ghcr.io, harbor, localhost:5000, ...)
     — via oras-py over the OCI distribution API

Both expose the same contract:

    client.push(content_dir, destination, cancel_event) -> list[str]

where destination has `repository` and `tags`. Failures reported by the
registry itself raise RegistryProtocolError; anything else propagates.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Any, Protocol, Sequence

from ocipush.oci.config import OcipushConfig
from ocipush.oci.index import (
    ANNOTATION_REF_NAME, OCI_INDEX_MEDIA_TYPE, SUPPORTED_SCHEMA_VERSION,
    IndexLoadError, ManifestDescriptor, OciImageIndex, load_index,
)
from ocipush.oci.layout import (
    OCI_LAYOUT_FILE, OCI_LAYOUT_VERSION, LayoutError, ManifestRef,
    blob_path, build_push_plan, compute_digest, select_descriptor,
)
from ocipush.errors import check_cancelled

logger = logging.getLogger(__name__)

USER_ENV_VAR = "OCIPUSH_REGISTRY_USER"
PASSWORD_ENV_VAR = "OCIPUSH_REGISTRY_PASSWORD"


class OCIError(Exception):
    pass


class RegistryProtocolError(OCIError):
    """The registry answered with an error; the message is end-user ready."""
    pass


class PushTarget(Protocol):
    repository: str
    tags: Sequence[str]


def _is_remote_registry(url: str) -> bool:
    """Check if a registry URL points to a remote OCI registry.

    Local (filesystem) registries are:
      - oci://local, oci://local/sub
      - oci:///absolute/path
      - file:///path
      - /absolute/path

    Everything else is remote:
      - ghcr.io, ghcr.io/myorg
      - oci://harbor.internal/team
      - localhost:5000
    """
    url = url.strip()
    if url.startswith("file://"):
        return False
    if url.startswith("/"):
        return False
    if url.startswith("oci://"):
        remainder = url[6:]
        # oci://local → local filesystem
        if remainder == "local" or remainder.startswith("local/"):
            return False
        # oci:///absolute/path → local filesystem
        if remainder.startswith("/"):
            return False
    return True


def _strip_scheme(url: str) -> str:
    url = url.strip().rstrip("/")
    for scheme in ("oci://", "https://", "http://"):
        if url.startswith(scheme):
            return url[len(scheme):]
    return url


def _registry_to_oras_target(registry_url: str, repository: str, tag: str) -> str:
    """Convert a registry URL + repository/tag to an oras target string.

    oci://ghcr.io/myorg + myapp + 1.0
      → ghcr.io/myorg/myapp:1.0
    """
    return f"{_strip_scheme(registry_url)}/{repository}:{tag}"


def _registry_host(registry_url: str) -> str:
    return _strip_scheme(registry_url).split("/", 1)[0]


def _resolve_registry_path(url: str) -> Path:
    """Convert a local registry URL to a filesystem path.

    oci://local → ~/.ocipush/registry/local
    oci:///absolute/path → /absolute/path
    file:///path → /path
    """
    from ocipush.oci import config

    url = url.strip()
    if url.startswith("oci://"):
        remainder = url[6:]
        if remainder.startswith("/"):
            return Path(remainder)
        return config.OCIPUSH_HOME / "registry" / remainder
    if url.startswith("file://"):
        return Path(url[7:])
    if url.startswith("/"):
        return Path(url)
    return config.OCIPUSH_HOME / "registry" / url


def _load_content_index(content_dir: Path) -> OciImageIndex:
    try:
        return load_index(content_dir / "index.json")
    except IndexLoadError as e:
        raise OCIError(f"Cannot read archive index: {e}") from e


class RegistryClient:
    """Base for registry backends bound to one registry URL."""

    def __init__(self, registry_url: str):
        self.registry_url = registry_url

    def push(
        self,
        content_dir: str | Path,
        destination: PushTarget,
        cancel_event: threading.Event | None = None,
    ) -> list[str]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.registry_url!r})"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# LOCAL REGISTRY (filesystem OCI layouts)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
class LocalRegistry(RegistryClient):
    """Filesystem registry: <root>/<repository>/ is an OCI image layout.

    Each pushed tag is an index.json entry annotated with the tag name.
    """

    @property
    def root(self) -> Path:
        return _resolve_registry_path(self.registry_url)

    def repository_path(self, repository: str) -> Path:
        return self.root / repository

    def push(
        self,
        content_dir: str | Path,
        destination: PushTarget,
        cancel_event: threading.Event | None = None,
    ) -> list[str]:
        content_dir = Path(content_dir)
        source_index = _load_content_index(content_dir)

        repo_path = self.repository_path(destination.repository)
        repo_path.mkdir(parents=True, exist_ok=True)
        (repo_path / OCI_LAYOUT_FILE).write_text(
            json.dumps({"imageLayoutVersion": OCI_LAYOUT_VERSION})
        )

        refs = []
        for tag in destination.tags:
            check_cancelled(cancel_event)
            try:
                descriptor = select_descriptor(source_index, destination.repository, tag)
                plan = build_push_plan(content_dir, descriptor)
            except LayoutError as e:
                raise RegistryProtocolError(str(e)) from e

            for blob in plan.blobs:
                check_cancelled(cancel_event)
                target = blob_path(repo_path, blob.digest)
                if not target.exists():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(blob.path, target)

            for manifest in [*plan.children, plan.top]:
                check_cancelled(cancel_event)
                self._write_manifest(repo_path, manifest)

            self._tag(repo_path, tag, ManifestDescriptor(
                digest=plan.top.digest,
                size=len(plan.top.data),
                media_type=plan.top.media_type,
                annotations={ANNOTATION_REF_NAME: tag},
            ))
            ref = f"{self.registry_url.rstrip('/')}/{destination.repository}:{tag}"
            logger.debug("Wrote %s (%s)", ref, plan.top.digest)
            refs.append(ref)

        return refs

    def list_tags(self, repository: str) -> list[str]:
        index_file = self.repository_path(repository) / "index.json"
        if not index_file.exists():
            return []
        index = load_index(index_file)
        return [m.ref_name for m in index.manifests if m.ref_name]

    def _write_manifest(self, repo_path: Path, manifest: ManifestRef) -> None:
        if manifest.digest.startswith("sha256:") and \
                compute_digest(manifest.data) != manifest.digest:
            raise RegistryProtocolError(
                f"Digest mismatch for manifest {manifest.digest}"
            )
        target = blob_path(repo_path, manifest.digest)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(manifest.data)

    def _tag(self, repo_path: Path, tag: str, descriptor: ManifestDescriptor) -> None:
        index_file = repo_path / "index.json"
        if index_file.exists():
            index = load_index(index_file)
        else:
            index = OciImageIndex(
                schema_version=SUPPORTED_SCHEMA_VERSION,
                media_type=OCI_INDEX_MEDIA_TYPE,
            )
        # A tag points at exactly one manifest
        index.manifests = [m for m in index.manifests if m.ref_name != tag]
        index.manifests.append(descriptor)
        with open(index_file, "w") as f:
            json.dump(index.to_dict(), f, indent=2)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REMOTE REGISTRY (oras-py based)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
class RemoteRegistry(RegistryClient):
    """Remote OCI registry via oras-py.

    Blobs are uploaded once per run, child manifests by digest and the
    top manifest once per tag.
    """

    def __init__(self, registry_url: str, insecure: bool = False):
        super().__init__(registry_url)
        self.insecure = insecure

    @property
    def hostname(self) -> str:
        return _registry_host(self.registry_url)

    def push(
        self,
        content_dir: str | Path,
        destination: PushTarget,
        cancel_event: threading.Event | None = None,
    ) -> list[str]:
        content_dir = Path(content_dir)
        source_index = _load_content_index(content_dir)

        check_cancelled(cancel_event)
        remote = _get_oras_client(self.hostname, self.insecure).remote

        uploaded: set[str] = set()
        refs = []
        for tag in destination.tags:
            check_cancelled(cancel_event)
            try:
                descriptor = select_descriptor(source_index, destination.repository, tag)
                plan = build_push_plan(content_dir, descriptor)
            except LayoutError as e:
                raise RegistryProtocolError(str(e)) from e

            target = _registry_to_oras_target(
                self.registry_url, destination.repository, tag,
            )
            container = remote.get_container(target)

            for blob in plan.blobs:
                if blob.digest in uploaded:
                    continue
                check_cancelled(cancel_event)
                logger.debug("Uploading blob %s (%d bytes) to %s",
                             blob.digest, blob.size, target)
                try:
                    response = remote.upload_blob(
                        str(blob.path), container, blob.descriptor(),
                    )
                except ValueError as e:
                    # oras-py reports non-2xx answers as ValueError
                    raise RegistryProtocolError(
                        f"Registry rejected blob {blob.digest} for {target}: {e}"
                    ) from e
                _check_response(response, f"blob {blob.digest} for {target}")
                uploaded.add(blob.digest)

            for child in plan.children:
                if child.digest in uploaded:
                    continue
                check_cancelled(cancel_event)
                self._put_manifest(remote, container, child.digest, child)
                uploaded.add(child.digest)

            check_cancelled(cancel_event)
            self._put_manifest(remote, container, tag, plan.top)
            refs.append(target)

        return refs

    def _put_manifest(self, remote: Any, container: Any, reference: str,
                      manifest: ManifestRef) -> None:
        url = f"{remote.prefix}://{container.manifest_url(reference)}"
        logger.debug("Uploading manifest %s as %s", manifest.digest, reference)
        response = remote.do_request(
            url,
            "PUT",
            data=manifest.data,
            headers={"Content-Type": manifest.media_type},
        )
        _check_response(response, f"manifest {reference} for {container}")


def _check_response(response: Any, what: str) -> None:
    if response.status_code not in (200, 201, 202):
        raise RegistryProtocolError(
            f"Upload of {what} failed with status {response.status_code}: "
            f"{response.text}"
        )


def _get_oras_client(hostname: str, insecure: bool = False):
    """Create an oras client with credential support.

    Credentials come from OCIPUSH_REGISTRY_USER / OCIPUSH_REGISTRY_PASSWORD
    when set, otherwise from Docker credential helpers.
    """
    import oras.client

    client = oras.client.OrasClient(hostname=hostname, insecure=insecure)

    username = os.environ.get(USER_ENV_VAR, "").strip()
    password = os.environ.get(PASSWORD_ENV_VAR, "")
    if username and password:
        client.login(hostname=hostname, username=username, password=password)
        return client

    # oras-py doesn't always pick up credsStore helpers automatically.
    try:
        _load_docker_creds_into_oras(client, hostname)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Could not load Docker credentials: %s", e)

    return client


def _load_docker_creds_into_oras(client, hostname: str) -> None:
    """Load Docker credsStore credentials for one registry into oras.

    Docker Desktop stores credentials via helpers like
    docker-credential-osxkeychain (macOS) or
    docker-credential-secretservice (Linux).
    """
    import subprocess

    docker_config = Path.home() / ".docker" / "config.json"
    if not docker_config.exists():
        return

    with open(docker_config) as f:
        config = json.load(f)

    creds_store = config.get("credHelpers", {}).get(hostname) or config.get("credsStore")
    if not creds_store:
        return  # Credentials are inline — oras handles this fine

    helper = f"docker-credential-{creds_store}"
    try:
        result = subprocess.run(
            [helper, "get"],
            input=hostname,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return
    if result.returncode != 0:
        return

    creds = json.loads(result.stdout)
    username = creds.get("Username", "")
    secret = creds.get("Secret", "")
    if username and secret:
        client.login(hostname=hostname, username=username, password=secret)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PUBLIC API (routes local vs remote)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def registry_for(registry_url: str, config: OcipushConfig | None = None) -> RegistryClient:
    """Construct the client for a registry URL.

    Routes to the local filesystem or a remote OCI registry based on URL.
    """
    if _is_remote_registry(registry_url):
        insecure = config.is_insecure(registry_url) if config else False
        return RemoteRegistry(registry_url, insecure=insecure)
    return LocalRegistry(registry_url)


def login(hostname: str, username: str, password: str, insecure: bool = False) -> None:
    """Store credentials for a remote registry."""
    import oras.client

    client = oras.client.OrasClient(hostname=hostname, insecure=insecure)
    client.login(hostname=hostname, username=username, password=password)
