"""
Sort policies: pure functions from a candidate and its content metadata to a
destination path relative to the output root.

Policies never touch the filesystem or the metadata store. Collision
handling against files already on disk is the organizer's job.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Dict, Optional, Type

from .errors import ConfigError
from .hashing import ContentIdentity
from .scanner import Candidate


@dataclass(frozen=True)
class ContentMetadata:
    """Attributes of a file's content a policy may sort on."""

    identity: ContentIdentity
    mtime: datetime
    sort_date: Optional[datetime] = None
    date_source: Optional[str] = None

    @property
    def effective_date(self) -> datetime:
        return self.sort_date or self.mtime


class SortPolicy:
    """Base class; subclasses implement destination()."""

    name = ""
    needs_sort_date = False

    def destination(self, candidate: Candidate, metadata: ContentMetadata) -> PurePosixPath:
        raise NotImplementedError


class DatePolicy(SortPolicy):
    """<year>/<month>/<original-filename>, by the most reliable available date."""

    name = "date"
    needs_sort_date = True

    def destination(self, candidate: Candidate, metadata: ContentMetadata) -> PurePosixPath:
        date = metadata.effective_date
        return PurePosixPath(f"{date.year:04d}", f"{date.month:02d}", candidate.name)


class FlatPolicy(SortPolicy):
    """Everything directly under the output root."""

    name = "none"

    def destination(self, candidate: Candidate, metadata: ContentMetadata) -> PurePosixPath:
        return PurePosixPath(candidate.name)


class ExtensionPolicy(SortPolicy):
    """<extension>/<original-filename>."""

    name = "extension"

    def destination(self, candidate: Candidate, metadata: ContentMetadata) -> PurePosixPath:
        return PurePosixPath(candidate.extension or "noext", candidate.name)


class ChecksumPolicy(SortPolicy):
    """<first two hex digits of the identity>/<original-filename>."""

    name = "checksum"

    def destination(self, candidate: Candidate, metadata: ContentMetadata) -> PurePosixPath:
        return PurePosixPath(metadata.identity.encode()[:2], candidate.name)


POLICIES: Dict[str, Type[SortPolicy]] = {
    policy.name: policy for policy in (DatePolicy, FlatPolicy, ExtensionPolicy, ChecksumPolicy)
}


def get_policy(name: str) -> SortPolicy:
    """Instantiate a sort policy by its configured name (case-insensitive)."""
    try:
        return POLICIES[name.strip().lower()]()
    except KeyError:
        raise ConfigError(f"Unknown sort policy '{name}' "
                          f"(choose from: {', '.join(sorted(POLICIES))})")
