"""
ocipush.push.archive — OCI archive extraction.

Each run extracts into its own directory under the temp root:

    <temp_root>/extract-<uuid4 hex>/
        ├── index.json
        ├── oci-layout
        └── blobs/sha256/...

The caller owns the directory and removes it with remove_extracted().
"""

from __future__ import annotations

import logging
import lzma
import shutil
import tarfile
import threading
import uuid
import zlib
from pathlib import Path

from ocipush.errors import CleanupError, ExtractionError, check_cancelled

logger = logging.getLogger(__name__)


def new_extraction_dir(temp_root: str | Path) -> Path:
    """Create a fresh, uniquely named directory under temp_root."""
    path = Path(temp_root) / f"extract-{uuid.uuid4().hex}"
    path.mkdir(parents=True, exist_ok=False)
    return path


def extract_archive(
    archive_path: str | Path,
    dest_dir: str | Path,
    cancel_event: threading.Event | None = None,
) -> Path:
    """Extract a (possibly compressed) tar archive into dest_dir.

    Existing files are overwritten. The cancellation signal is checked
    before every member.

    Raises:
        ExtractionError: archive missing, unreadable or corrupt
        PushCancelled: cancel_event was set
    """
    archive_path = Path(archive_path)
    dest_dir = Path(dest_dir)

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            for member in tar:
                check_cancelled(cancel_event)
                tar.extract(member, dest_dir, filter="data")
    # Truncated or corrupt compressed streams surface as EOFError,
    # zlib.error or LZMAError rather than TarError
    except (tarfile.TarError, OSError, EOFError, zlib.error, lzma.LZMAError) as e:
        raise ExtractionError(
            f"Failed to extract archive '{archive_path}': {e}", cause=e,
        ) from e

    logger.debug("Extracted %s to %s", archive_path, dest_dir)
    return dest_dir


def remove_extracted(path: str | Path | None) -> None:
    """Delete an extraction directory if it exists.

    Raises:
        CleanupError: the directory exists but could not be removed
    """
    if not path:
        return
    path = Path(path)
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        raise CleanupError(
            f"Failed to remove temporary directory '{path}': {e}", cause=e,
        ) from e
    logger.debug("Removed %s", path)
