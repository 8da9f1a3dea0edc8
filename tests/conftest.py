"""
tests/conftest.py — Shared fixtures.

OCI archives are built on the fly: every image gets a config blob,
one layer blob and a manifest blob, all content-addressed.
"""

import hashlib
import io
import json
import os
import sys
import tarfile

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from ocipush.oci.index import (
    ANNOTATION_REF_NAME, OCI_INDEX_MEDIA_TYPE, OCI_MANIFEST_MEDIA_TYPE,
)


@pytest.fixture(autouse=True)
def clean_home(tmp_path, monkeypatch):
    """Fresh ~/.ocipush for every test."""
    monkeypatch.setattr("ocipush.oci.config.OCIPUSH_HOME", tmp_path / "home")
    monkeypatch.delenv("OCIPUSH_TRACE", raising=False)
    yield


def write_blob(layout_dir, data: bytes) -> dict:
    digest = hashlib.sha256(data).hexdigest()
    blob_dir = layout_dir / "blobs" / "sha256"
    blob_dir.mkdir(parents=True, exist_ok=True)
    (blob_dir / digest).write_bytes(data)
    return {"digest": f"sha256:{digest}", "size": len(data)}


def write_image(layout_dir, seed: str) -> dict:
    """Write one single-layer image; return its manifest descriptor."""
    config = write_blob(layout_dir, json.dumps({"seed": seed}).encode())
    layer = write_blob(layout_dir, f"layer-{seed}".encode())
    manifest = {
        "schemaVersion": 2,
        "mediaType": OCI_MANIFEST_MEDIA_TYPE,
        "config": {"mediaType": "application/vnd.oci.image.config.v1+json", **config},
        "layers": [{"mediaType": "application/vnd.oci.image.layer.v1.tar", **layer}],
    }
    desc = write_blob(layout_dir, json.dumps(manifest).encode())
    return {"mediaType": OCI_MANIFEST_MEDIA_TYPE, **desc}


def write_layout(layout_dir, ref_names=(), *, same_image=False,
                 schema_version=2, media_type=OCI_INDEX_MEDIA_TYPE):
    """Write an OCI layout whose index lists one entry per ref name.

    A ref name of None produces an entry without annotations.
    """
    layout_dir.mkdir(parents=True, exist_ok=True)
    (layout_dir / "oci-layout").write_text('{"imageLayoutVersion": "1.0.0"}')

    shared = write_image(layout_dir, "shared") if same_image else None
    manifests = []
    for i, ref in enumerate(ref_names):
        desc = dict(shared) if shared else write_image(layout_dir, f"img{i}")
        if ref is not None:
            desc["annotations"] = {ANNOTATION_REF_NAME: ref}
        manifests.append(desc)

    write_index(layout_dir, {
        "schemaVersion": schema_version,
        "mediaType": media_type,
        "manifests": manifests,
    })
    return layout_dir


def write_index(layout_dir, index) -> None:
    layout_dir.mkdir(parents=True, exist_ok=True)
    text = index if isinstance(index, str) else json.dumps(index)
    (layout_dir / "index.json").write_text(text)


def pack_layout(layout_dir, tar_path):
    mode = "w:gz" if str(tar_path).endswith(".gz") else "w"
    with tarfile.open(tar_path, mode) as tar:
        for path in sorted(layout_dir.rglob("*")):
            tar.add(str(path), arcname=str(path.relative_to(layout_dir)),
                    recursive=False)
    return tar_path


@pytest.fixture
def make_archive(tmp_path):
    """Build an OCI archive: make_archive(["app:1.0", "app:latest"])."""
    counter = {"n": 0}

    def _make(ref_names=(), *, index=None, no_index=False, name="image.tar",
              **layout_kwargs):
        counter["n"] += 1
        layout_dir = tmp_path / f"layout{counter['n']}"
        layout_dir.mkdir()
        if index is not None:
            write_index(layout_dir, index)
        elif not no_index:
            write_layout(layout_dir, ref_names, **layout_kwargs)
        else:
            write_blob(layout_dir, b"orphan")
        return pack_layout(layout_dir, tmp_path / name)

    return _make


@pytest.fixture
def make_layout(tmp_path):
    """Build an extracted layout directory (no tarball)."""
    counter = {"n": 0}

    def _make(ref_names=(), *, index=None, **layout_kwargs):
        counter["n"] += 1
        layout_dir = tmp_path / f"extracted{counter['n']}"
        if index is not None:
            write_index(layout_dir, index)
        else:
            write_layout(layout_dir, ref_names, **layout_kwargs)
        return layout_dir

    return _make


def annotated_index(*ref_names, schema_version=2, media_type=OCI_INDEX_MEDIA_TYPE):
    """index.json content with one annotated entry per ref name."""
    manifests = []
    for ref in ref_names:
        entry = {
            "mediaType": OCI_MANIFEST_MEDIA_TYPE,
            "digest": "sha256:532eaabd9574880dbf76b9b8cc00832c20a6ec113d682299550d7a6e0f345e25",
            "size": 4,
        }
        if ref is not None:
            entry["annotations"] = {ANNOTATION_REF_NAME: ref}
        manifests.append(entry)
    return {
        "schemaVersion": schema_version,
        "mediaType": media_type,
        "manifests": manifests,
    }
