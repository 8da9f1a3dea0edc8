"""
ocipush.push.task — Build-step adapter.

Build systems set plain properties, call execute() and read a boolean:

    task = PushImageToRegistry(
        archive_path="out/app.tar",
        registry="ghcr.io/myorg",
        image_tags=["1.0", "latest"],
    )
    ok = task.execute()

cancel() may be called from another thread while execute() runs.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from ocipush.errors import PushCancelled
from ocipush.oci.config import OcipushConfig
from ocipush.push.pusher import ArchivePusher, PushOutcome

logger = logging.getLogger(__name__)


@dataclass
class PushImageToRegistry:
    """Push an OCI archive as a build step."""
    archive_path: str = ""
    registry: str = ""
    repository: str | None = None
    image_tags: list[str] | None = None
    config: OcipushConfig | None = None
    outcome: PushOutcome | None = field(default=None, init=False)
    _cancel_event: threading.Event = field(
        default_factory=threading.Event, init=False, repr=False,
    )

    def cancel(self) -> None:
        self._cancel_event.set()

    def execute(self) -> bool:
        """Run the push; True when nothing failed."""
        missing = [
            name for name in ("archive_path", "registry")
            if not getattr(self, name)
        ]
        if missing:
            logger.error("Missing required task properties: %s", ", ".join(missing))
            return False

        pusher = ArchivePusher(
            self.archive_path,
            self.registry,
            repository=self.repository,
            tags=self.image_tags,
            config=self.config,
        )
        try:
            self.outcome = pusher.push(self._cancel_event)
        except PushCancelled:
            logger.warning("Push of '%s' was cancelled.", self.archive_path)
            return False

        return not self.outcome.has_errors
