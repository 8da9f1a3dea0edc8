"""ocipush.oci — OCI index/layout model, registry clients and config."""

from ocipush.oci.config import (
    OcipushConfig, RegistryConfig, load_config, save_config, OCIPUSH_HOME,
)
from ocipush.oci.index import (
    ManifestDescriptor, OciImageIndex, IndexLoadError, load_index,
    ANNOTATION_REF_NAME, OCI_INDEX_MEDIA_TYPE,
)
from ocipush.oci.layout import LayoutError, PushPlan, build_push_plan, select_descriptor
from ocipush.oci.client import (
    OCIError, RegistryProtocolError,
    RegistryClient, LocalRegistry, RemoteRegistry, registry_for,
)

__all__ = [
    "OcipushConfig", "RegistryConfig", "load_config", "save_config", "OCIPUSH_HOME",
    "ManifestDescriptor", "OciImageIndex", "IndexLoadError", "load_index",
    "ANNOTATION_REF_NAME", "OCI_INDEX_MEDIA_TYPE",
    "LayoutError", "PushPlan", "build_push_plan", "select_descriptor",
    "OCIError", "RegistryProtocolError",
    "RegistryClient", "LocalRegistry", "RemoteRegistry", "registry_for",
]
