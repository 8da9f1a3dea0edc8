"""
ocipush — push OCI image archives to container registries.

No container engine required: the archive is extracted, its index.json
annotations are resolved into repository:tag destinations and each one
is uploaded to the registry.
"""

from ocipush.errors import (
    PushError,
    ExtractionError,
    ArchiveIndexError,
    FormatError,
    RegistryPushError,
    PushFailedError,
    CleanupError,
    PushCancelled,
)
from ocipush.push.pusher import ArchivePusher, PushOutcome, PushStage
from ocipush.push.resolver import Destination
from ocipush.push.task import PushImageToRegistry

__version__ = "0.1.0"

__all__ = [
    # pipeline
    "ArchivePusher",
    "PushOutcome",
    "PushStage",
    "Destination",
    "PushImageToRegistry",
    # errors
    "PushError",
    "ExtractionError",
    "ArchiveIndexError",
    "FormatError",
    "RegistryPushError",
    "PushFailedError",
    "CleanupError",
    "PushCancelled",
]
