"""
Exception hierarchy for photoorg.

Per-file errors (HashError, MoveFailure) are reported against a single
candidate and never abort a run. Store and configuration errors are fatal.
"""

from pathlib import Path
from typing import Optional


class PhotoOrgError(Exception):
    """Base exception for photoorg."""


class ConfigError(PhotoOrgError):
    """Raised when configuration is missing, unparsable or invalid."""


class HashError(PhotoOrgError):
    """Raised when a file cannot be read while computing its identity."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Could not hash {path}: {reason}")
        self.path = path
        self.reason = reason


class MoveFailure(PhotoOrgError):
    """Raised when a file could not be relocated into the library."""

    def __init__(self, source: Path, dest: Optional[Path], reason: str):
        super().__init__(f"Failed to move {source} -> {dest}: {reason}")
        self.source = source
        self.dest = dest
        self.reason = reason


class StoreError(PhotoOrgError):
    """Base exception for metadata store operations."""


class CorruptStore(StoreError):
    """Raised when the on-disk store cannot be parsed."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Library metadata at {path} is corrupt: {reason}")
        self.path = path
        self.reason = reason


class DuplicateIdentity(StoreError):
    """Raised when recording an identity that the store already holds."""

    def __init__(self, identity: str, existing_path: str):
        super().__init__(f"Identity {identity} is already recorded at {existing_path}")
        self.identity = identity
        self.existing_path = existing_path
