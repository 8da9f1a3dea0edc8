"""ocipush.push — Archive push pipeline."""

from ocipush.push.archive import extract_archive, new_extraction_dir, remove_extracted
from ocipush.push.resolver import Destination, resolve_destinations
from ocipush.push.pusher import ArchivePusher, PushOutcome, PushStage, push_destination
from ocipush.push.task import PushImageToRegistry

__all__ = [
    "extract_archive", "new_extraction_dir", "remove_extracted",
    "Destination", "resolve_destinations",
    "ArchivePusher", "PushOutcome", "PushStage", "push_destination",
    "PushImageToRegistry",
]
