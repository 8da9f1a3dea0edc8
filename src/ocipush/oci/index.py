"""
ocipush.oci.index — OCI image index (index.json) model and reader.

index.json at the root of an OCI image layout:

    {
      "schemaVersion": 2,
      "mediaType": "application/vnd.oci.image.index.v1+json",
      "manifests": [
        {
          "mediaType": "application/vnd.oci.image.manifest.v1+json",
          "digest": "sha256:...",
          "size": 1234,
          "annotations": {
            "org.opencontainers.image.ref.name": "myapp:1.0"
          }
        }
      ]
    }

The reader only deserializes. Version and media type checks are
done by the caller (see ocipush.push.resolver).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


OCI_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_LIST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"

INDEX_MEDIA_TYPES = (OCI_INDEX_MEDIA_TYPE, DOCKER_MANIFEST_LIST_MEDIA_TYPE)

SUPPORTED_SCHEMA_VERSION = 2

ANNOTATION_REF_NAME = "org.opencontainers.image.ref.name"


@dataclass
class ManifestDescriptor:
    """One entry of an index's manifests list."""
    digest: str
    size: int = 0
    media_type: str = ""
    annotations: dict[str, str] = field(default_factory=dict)

    @property
    def ref_name(self) -> str:
        return self.annotations.get(ANNOTATION_REF_NAME, "") or ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "mediaType": self.media_type,
            "digest": self.digest,
            "size": self.size,
        }
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ManifestDescriptor":
        annotations = data.get("annotations") or {}
        if not isinstance(annotations, dict):
            raise IndexLoadError(
                f"Descriptor annotations must be a mapping, got {type(annotations).__name__}"
            )
        return cls(
            digest=str(data.get("digest", "")),
            size=int(data.get("size", 0) or 0),
            media_type=str(data.get("mediaType", "")),
            annotations={str(k): str(v) for k, v in annotations.items()},
        )


@dataclass
class OciImageIndex:
    """Parsed index.json."""
    schema_version: int = 0
    media_type: str = ""
    manifests: list[ManifestDescriptor] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "mediaType": self.media_type,
            "manifests": [m.to_dict() for m in self.manifests],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "OciImageIndex":
        if not isinstance(data, dict):
            raise IndexLoadError("index.json must contain a JSON object")
        manifests = data.get("manifests") or []
        if not isinstance(manifests, list):
            raise IndexLoadError("index.json 'manifests' must be a list")
        try:
            schema_version = int(data.get("schemaVersion", 0) or 0)
        except (TypeError, ValueError) as e:
            raise IndexLoadError(f"Invalid schemaVersion: {e}") from e
        return cls(
            schema_version=schema_version,
            media_type=str(data.get("mediaType", "") or ""),
            manifests=[
                ManifestDescriptor.from_dict(m)
                for m in manifests
                if isinstance(m, dict)
            ],
        )


class IndexLoadError(Exception):
    """index.json could not be read or deserialized."""
    pass


def load_index(path: str | Path) -> OciImageIndex:
    """Read an index.json file.

    Raises:
        IndexLoadError: file missing, unreadable, malformed JSON or wrong shape
    """
    p = Path(path)
    try:
        with open(p, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise IndexLoadError(f"Index file not found: {p}") from e
    except json.JSONDecodeError as e:
        raise IndexLoadError(f"Malformed JSON in {p.name}: {e}") from e
    except UnicodeDecodeError as e:
        raise IndexLoadError(f"{p.name} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise IndexLoadError(f"Cannot read {p}: {e}") from e

    try:
        return OciImageIndex.from_dict(data)
    except (TypeError, ValueError) as e:
        raise IndexLoadError(f"Invalid index structure in {p.name}: {e}") from e
