"""
ocipush.oci.layout — OCI image layout reader.

An extracted archive is an OCI image layout:

    <dir>/
    ├── oci-layout              {"imageLayoutVersion": "1.0.0"}
    ├── index.json              (see ocipush.oci.index)
    └── blobs/sha256/<hex>      content-addressed manifests, configs, layers

For one tagged descriptor of index.json this module works out what has
to be sent to a registry: every blob, every child manifest (pushed by
digest) and finally the top-level manifest (pushed by tag).
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ocipush.oci.index import (
    INDEX_MEDIA_TYPES, ManifestDescriptor, OciImageIndex,
)


OCI_LAYOUT_FILE = "oci-layout"
OCI_LAYOUT_VERSION = "1.0.0"

_DIGEST_RE = re.compile(r"^(?P<algorithm>sha256|sha512):(?P<hex>[a-f0-9]{32,128})$")


class LayoutError(Exception):
    """The layout is incomplete or inconsistent."""
    pass


@dataclass
class BlobRef:
    """A blob (config or layer) referenced by a manifest."""
    digest: str
    size: int
    media_type: str
    path: Path

    def descriptor(self) -> dict[str, Any]:
        return {"mediaType": self.media_type, "digest": self.digest, "size": self.size}


@dataclass
class ManifestRef:
    """A manifest or index document to upload."""
    digest: str
    media_type: str
    data: bytes


@dataclass
class PushPlan:
    """Everything required to make one tag resolvable in a registry."""
    top: ManifestRef
    blobs: list[BlobRef] = field(default_factory=list)
    children: list[ManifestRef] = field(default_factory=list)


def blob_path(layout_dir: str | Path, digest: str) -> Path:
    """Path of a blob inside the layout.

    sha256:abc... → <layout_dir>/blobs/sha256/abc...
    """
    match = _DIGEST_RE.match(digest or "")
    if not match:
        raise LayoutError(f"Invalid digest: '{digest}'")
    return Path(layout_dir) / "blobs" / match.group("algorithm") / match.group("hex")


def compute_digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def read_blob(layout_dir: str | Path, digest: str) -> bytes:
    path = blob_path(layout_dir, digest)
    if not path.is_file():
        raise LayoutError(f"Blob {digest} is missing from the archive")
    return path.read_bytes()


def select_descriptor(
    index: OciImageIndex,
    repository: str,
    tag: str,
) -> ManifestDescriptor:
    """Pick the index entry to publish as repository:tag.

    Priority:
      1. entry annotated exactly "repository:tag"
      2. the only image in the layout (all entries share one digest)
      3. the only entry whose annotated tag equals tag
    """
    if not index.manifests:
        raise LayoutError("The archive index does not list any manifests")

    wanted = f"{repository}:{tag}"
    for m in index.manifests:
        if m.ref_name == wanted:
            return m

    digests = {m.digest for m in index.manifests}
    if len(digests) == 1:
        return index.manifests[0]

    by_tag = [
        m for m in index.manifests
        if m.ref_name.count(":") == 1 and m.ref_name.split(":", 1)[1] == tag
    ]
    if len({m.digest for m in by_tag}) == 1:
        return by_tag[0]

    raise LayoutError(
        f"Cannot decide which image to push as '{wanted}': "
        f"the archive contains {len(digests)} different images"
    )


def build_push_plan(layout_dir: str | Path, descriptor: ManifestDescriptor) -> PushPlan:
    """Collect the blobs and manifests reachable from a descriptor."""
    layout_dir = Path(layout_dir)
    blobs: dict[str, BlobRef] = {}
    children: list[ManifestRef] = []

    top = _collect(layout_dir, descriptor.digest, descriptor.media_type,
                   blobs, children, seen=set())
    # The top manifest is pushed by tag, not as a child
    children = [c for c in children if c.digest != top.digest]

    return PushPlan(top=top, blobs=list(blobs.values()), children=children)


def _collect(
    layout_dir: Path,
    digest: str,
    media_type: str,
    blobs: dict[str, BlobRef],
    children: list[ManifestRef],
    seen: set[str],
) -> ManifestRef:
    if digest in seen:
        raise LayoutError(f"Manifest {digest} references itself")
    seen = seen | {digest}

    data = read_blob(layout_dir, digest)
    try:
        doc = json.loads(data)
    except json.JSONDecodeError as e:
        raise LayoutError(f"Manifest {digest} is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise LayoutError(f"Manifest {digest} must be a JSON object")

    media_type = doc.get("mediaType") or media_type
    ref = ManifestRef(digest=digest, media_type=media_type, data=data)

    if media_type in INDEX_MEDIA_TYPES or "manifests" in doc:
        for child in doc.get("manifests") or []:
            child_ref = _collect(
                layout_dir, child.get("digest", ""), child.get("mediaType", ""),
                blobs, children, seen,
            )
            if all(c.digest != child_ref.digest for c in children):
                children.append(child_ref)
        return ref

    referenced = [doc.get("config")] + list(doc.get("layers") or [])
    for entry in referenced:
        if not isinstance(entry, dict):
            continue
        blob_digest = entry.get("digest", "")
        if blob_digest in blobs:
            continue
        path = blob_path(layout_dir, blob_digest)
        if not path.is_file():
            raise LayoutError(f"Blob {blob_digest} is missing from the archive")
        blobs[blob_digest] = BlobRef(
            digest=blob_digest,
            size=int(entry.get("size") or path.stat().st_size),
            media_type=entry.get("mediaType", ""),
            path=path,
        )
    return ref
