"""
ocipush.push.pusher — Archive push pipeline.

    ArchivePusher("app.tar", "ghcr.io/myorg").push()

Stages:

    NOT_STARTED → EXTRACTING → RESOLVING → PUSHING → CLEANING_UP → DONE

Each stage hands its result to the next one or a PushError that ends
the run. The extraction directory is removed in CLEANING_UP whatever
happened before, including cancellation. An unexpected exception from
any stage is recorded as a PushFailedError. The first recorded error
decides the exit code; later ones are still logged and kept.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from ocipush.errors import (
    ExtractionError, PushCancelled, PushError, PushFailedError,
    RegistryPushError, check_cancelled,
)
from ocipush.oci.client import RegistryClient, RegistryProtocolError, registry_for
from ocipush.oci.config import OcipushConfig, load_config
from ocipush.push.archive import extract_archive, new_extraction_dir, remove_extracted
from ocipush.push.resolver import Destination, resolve_destinations

logger = logging.getLogger(__name__)


class PushStage(enum.Enum):
    NOT_STARTED = "not-started"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    PUSHING = "pushing"
    CLEANING_UP = "cleaning-up"
    DONE = "done"


@dataclass
class PushOutcome:
    """Result of one run. exit_code never goes back to 0 once set."""
    exit_code: int = 0
    errors: list[PushError] = field(default_factory=list)
    pushed: list[Destination] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.exit_code != 0

    def record(self, error: PushError) -> None:
        if error.cause is not None:
            logger.error("%s", error.message, exc_info=error.cause)
        else:
            logger.error("%s", error.message)
        self.errors.append(error)
        if self.exit_code == 0:
            self.exit_code = 1


def push_destination(
    content_dir: str | Path,
    destination: Destination,
    cancel_event: threading.Event | None = None,
) -> PushError | None:
    """Push one destination; return the failure, if any.

    Registry-reported failures keep their message, anything else is
    wrapped in a generic push failure.
    """
    check_cancelled(cancel_event)
    if destination.client is None:
        return PushFailedError(
            f"No registry client bound to destination '{destination}'."
        )
    try:
        destination.client.push(content_dir, destination, cancel_event)
    except PushCancelled:
        raise
    except RegistryProtocolError as e:
        return RegistryPushError(str(e), cause=e)
    except Exception as e:
        return PushFailedError(
            f"Failed to push to the output registry: {e}", cause=e,
        )

    logger.info("Pushed image '%s' to registry '%s'.",
                destination, destination.registry)
    return None


ClientFactory = Callable[[str, OcipushConfig], RegistryClient]


class ArchivePusher:
    """Pushes an OCI archive to a registry.

    Args:
        archive_path: OCI image archive (tar, optionally compressed)
        registry: registry address destinations are bound to
        repository: optional repository override
        tags: optional tag override
        config: ocipush config (defaults to ~/.ocipush/config.yaml)
        client_factory: builds the registry client, registry_for by default
    """

    def __init__(
        self,
        archive_path: str | Path,
        registry: str,
        repository: str | None = None,
        tags: Sequence[str] | None = None,
        config: OcipushConfig | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.archive_path = Path(archive_path)
        self.registry = registry
        self.repository = repository
        self.tags = list(tags) if tags is not None else None
        self.config = config if config is not None else load_config()
        self.client_factory = client_factory or registry_for
        self.stage = PushStage.NOT_STARTED
        self.extracted_path: Path | None = None
        self.outcome: PushOutcome | None = None

    def push(self, cancel_event: threading.Event | None = None) -> PushOutcome:
        """Run the whole pipeline.

        Returns the outcome; only PushCancelled escapes, after cleanup.
        """
        check_cancelled(cancel_event)
        outcome = self.outcome = PushOutcome()

        try:
            self._run(outcome, cancel_event)
        except PushCancelled:
            raise
        except Exception as e:
            outcome.record(PushFailedError(
                f"Failed to push archive '{self.archive_path}': {e}", cause=e,
            ))
        finally:
            self._cleanup(outcome)

        return outcome

    def _run(self, outcome: PushOutcome, cancel_event: threading.Event | None) -> None:
        self.stage = PushStage.EXTRACTING
        content_dir = self._extract(cancel_event)
        if isinstance(content_dir, PushError):
            outcome.record(content_dir)
            return

        check_cancelled(cancel_event)
        self.stage = PushStage.RESOLVING
        destinations = resolve_destinations(
            content_dir,
            self.registry,
            repository=self.repository,
            tags=self.tags,
            client=self.client_factory(self.registry, self.config),
        )
        if isinstance(destinations, PushError):
            outcome.record(destinations)
            return
        if not destinations:
            logger.info("Archive '%s' contains nothing to push.", self.archive_path)
            return

        self.stage = PushStage.PUSHING
        for destination in destinations:
            error = push_destination(content_dir, destination, cancel_event)
            if error is not None:
                outcome.record(error)
                return
            outcome.pushed.append(destination)

    def _extract(self, cancel_event: threading.Event | None) -> Path | PushError:
        try:
            self.extracted_path = new_extraction_dir(self.config.extraction_root())
        except OSError as e:
            return ExtractionError(
                f"Failed to create a temporary directory: {e}", cause=e,
            )
        try:
            return extract_archive(self.archive_path, self.extracted_path, cancel_event)
        except ExtractionError as e:
            return e

    def _cleanup(self, outcome: PushOutcome) -> None:
        self.stage = PushStage.CLEANING_UP
        try:
            remove_extracted(self.extracted_path)
        except PushError as e:
            outcome.record(e)
        self.extracted_path = None
        self.stage = PushStage.DONE
