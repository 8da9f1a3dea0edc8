"""
ocipush.push.resolver — Destination resolution.

Decides where an archive gets pushed from the explicit inputs and the
archive's own index.json:

    repository  tags   → destinations
    ----------  -----    ---------------------------------------------
    -           -        every repository:tag annotated in index.json
    given       given    exactly [repository: tags], archive not read
    given       -        archive tags under the given repository
                         (archive must hold exactly one repository)
    -           given    archive repository with the given tags
                         (archive must hold exactly one repository)

Annotation values look like "myapp:1.0" and live under the
org.opencontainers.image.ref.name key of each index entry.

Expected problems (bad index version, malformed annotations, ambiguous
overrides) are returned as error values, not raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ocipush.errors import ArchiveIndexError, FormatError, PushError
from ocipush.oci.client import RegistryClient
from ocipush.oci.index import (
    ANNOTATION_REF_NAME, OCI_INDEX_MEDIA_TYPE, SUPPORTED_SCHEMA_VERSION,
    IndexLoadError, OciImageIndex, load_index,
)


@dataclass(frozen=True)
class Destination:
    """One repository with its tags, bound to a registry client."""
    repository: str
    tags: tuple[str, ...]
    registry: str
    client: RegistryClient | None = field(default=None, compare=False)

    def __str__(self) -> str:
        return f"{self.repository}:{','.join(self.tags)}"


Resolution = list[Destination] | PushError


def resolve_destinations(
    content_dir: str | Path,
    registry: str,
    repository: str | None = None,
    tags: Sequence[str] | None = None,
    client: RegistryClient | None = None,
) -> Resolution:
    """Build the push destinations for an extracted archive.

    Args:
        content_dir: extracted archive (holds index.json)
        registry: registry address every destination is bound to
        repository: explicit repository override
        tags: explicit tag override
        client: registry client attached to each destination

    Returns:
        Destination list (possibly empty: nothing to push), or the
        PushError describing why resolution failed
    """
    repository = repository or None
    tags = tuple(tags) if tags else None

    def make(repo: str, repo_tags: Sequence[str]) -> Destination:
        return Destination(
            repository=repo, tags=tuple(repo_tags),
            registry=registry, client=client,
        )

    # Nothing provided → everything comes from the archive
    if repository is None and tags is None:
        return _load_destinations(content_dir, make)

    # Everything provided → archive content is irrelevant
    if repository is not None and tags is not None:
        return [make(repository, tags)]

    # Only one of them → the archive must name exactly one repository
    if repository is not None or tags is not None:
        found = _load_destinations(content_dir, make)
        if isinstance(found, PushError):
            return found
        if len(found) != 1:
            return FormatError(_override_message(found, repository is not None))
        if repository is not None:
            return [make(repository, found[0].tags)]
        return [make(found[0].repository, tags)]

    return FormatError(
        "Repository and tags must both be supplied or both omitted."
    )


def _override_message(found: list[Destination], custom_repository: bool) -> str:
    what = "repository" if custom_repository else "tags"
    if not found:
        return (
            f"Cannot apply custom {what}: the archive does not contain "
            f"any repository."
        )
    repos = ", ".join(d.repository for d in found)
    return (
        f"Cannot apply custom {what} when the archive contains multiple "
        f"repositories ({repos})."
    )


def _load_destinations(content_dir: str | Path, make) -> Resolution:
    index_path = Path(content_dir) / "index.json"
    try:
        index = load_index(index_path)
    except IndexLoadError as e:
        return ArchiveIndexError(
            f"Failed to load repository and tag information from archive: {e}",
            cause=e,
        )

    pairs = repository_tag_pairs(index)
    if isinstance(pairs, PushError):
        return pairs

    return [make(repo, repo_tags) for repo, repo_tags in group_by_repository(pairs)]


def validate_index(index: OciImageIndex) -> FormatError | None:
    """Reject index versions and media types other than OCI index v2."""
    if index.schema_version != SUPPORTED_SCHEMA_VERSION:
        return FormatError(
            f"Unsupported index schemaVersion {index.schema_version}; "
            f"only {SUPPORTED_SCHEMA_VERSION} is supported."
        )
    if index.media_type != OCI_INDEX_MEDIA_TYPE:
        return FormatError(
            f"Unsupported index mediaType '{index.media_type}'; "
            f"expected '{OCI_INDEX_MEDIA_TYPE}'."
        )
    return None


def repository_tag_pairs(index: OciImageIndex) -> list[tuple[str, str]] | FormatError:
    """Split every ref-name annotation into (repository, tag).

    Entries without the annotation are skipped. Malformed values are
    all collected and reported in a single error.
    """
    invalid = validate_index(index)
    if invalid is not None:
        return invalid

    if not index.manifests:
        return []

    values = [m.ref_name for m in index.manifests if m.ref_name]
    if not values:
        return FormatError(
            f"No valid repository and tag annotations found: none of the "
            f"archive's manifests carries a '{ANNOTATION_REF_NAME}' annotation."
        )

    pairs: list[tuple[str, str]] = []
    bad: list[str] = []
    for value in values:
        # "repository:tag" with both halves non-empty
        parts = value.split(":")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            bad.append(value)
            continue
        pairs.append((parts[0], parts[1]))

    if bad:
        return FormatError(
            f"Invalid '{ANNOTATION_REF_NAME}' annotation values "
            f"(expected 'repository:tag'): {', '.join(bad)}",
            details=bad,
        )
    return pairs


def group_by_repository(
    pairs: Sequence[tuple[str, str]],
) -> list[tuple[str, list[str]]]:
    """Group pairs by repository, first-seen order, distinct tags."""
    grouped: dict[str, list[str]] = {}
    for repo, tag in pairs:
        repo_tags = grouped.setdefault(repo, [])
        if tag not in repo_tags:
            repo_tags.append(tag)
    return list(grouped.items())
