"""
ocipush.errors — Push pipeline errors.

Every failure recorded by the pipeline is a PushError tagged with the
stage it came from. PushCancelled is not a failure: it aborts the run
and propagates to the caller once cleanup is done.
"""

from __future__ import annotations

import threading


class PushError(Exception):
    """A failure recorded against a push run."""
    stage = "push"

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ExtractionError(PushError):
    """The archive could not be extracted."""
    stage = "extract"


class ArchiveIndexError(PushError):
    """index.json could not be loaded from the extracted archive."""
    stage = "resolve"


class FormatError(PushError):
    """Index content or explicit inputs are not usable.

    details lists every offending value when more than one was found.
    """
    stage = "resolve"

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = list(details or [])


class RegistryPushError(PushError):
    """The registry rejected the push; message is user-ready."""
    stage = "push"


class PushFailedError(PushError):
    """Any other failure while pushing a destination."""
    stage = "push"


class CleanupError(PushError):
    """The extraction directory could not be removed."""
    stage = "cleanup"


class PushCancelled(Exception):
    """The run was cancelled."""
    pass


def check_cancelled(cancel_event: threading.Event | None) -> None:
    """Raise PushCancelled if the cancellation signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise PushCancelled("Push was cancelled")
