"""
Persistent library metadata: one record per content identity.

The store lives at <output>/_pometa/library.json. It is loaded fully into
memory at startup and rewritten atomically (temp file + rename) on persist.
"""

import json
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Optional, Union

from .constants import META_DIRNAME, STORE_FILENAME, STORE_VERSION, get_logger
from .errors import CorruptStore, DuplicateIdentity, StoreError
from .hashing import ContentIdentity


@dataclass(frozen=True)
class LibraryRecord:
    """Canonical location and import metadata for one identity."""

    identity: ContentIdentity
    path: str  # relative to the output root, POSIX separators
    source: str
    discovered_at: datetime
    reconciled: bool = False

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "source": self.source,
            "discovered_at": self.discovered_at.isoformat(timespec="seconds"),
            "reconciled": self.reconciled,
        }

    @classmethod
    def from_dict(cls, identity: ContentIdentity, data: Dict) -> "LibraryRecord":
        return cls(
            identity=identity,
            path=data["path"],
            source=data["source"],
            discovered_at=datetime.fromisoformat(data["discovered_at"]),
            reconciled=bool(data.get("reconciled", False)),
        )


class MetadataStore:
    """In-memory mapping of identities to library records, with durable persist."""

    def __init__(self, output_root: Path, records: Optional[Dict[ContentIdentity, LibraryRecord]] = None):
        self.output_root = Path(output_root)
        self.meta_root = self.output_root / META_DIRNAME
        self.store_path = self.meta_root / STORE_FILENAME
        self._records: Dict[ContentIdentity, LibraryRecord] = dict(records or {})
        self._by_path: Dict[str, ContentIdentity] = {
            rec.path: ident for ident, rec in self._records.items()
        }
        self.lock = threading.RLock()
        self.dirty = False
        self.logger = get_logger()

    @classmethod
    def load(cls, output_root: Path) -> "MetadataStore":
        """Load the store for an output root; an absent store file is an empty library."""
        store = cls(output_root)
        path = store.store_path
        if not path.exists():
            store.logger.debug(f"No library metadata at {path}, starting empty")
            return store

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptStore(path, f"unreadable: {e}") from e
        except json.JSONDecodeError as e:
            raise CorruptStore(path, f"invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("records"), dict):
            raise CorruptStore(path, "expected an object with a 'records' mapping")
        if data.get("version") != STORE_VERSION:
            raise CorruptStore(path, f"unsupported format version {data.get('version')!r}")

        records = {}
        for key, value in data["records"].items():
            try:
                identity = ContentIdentity.decode(key)
                records[identity] = LibraryRecord.from_dict(identity, value)
            except (ValueError, KeyError, TypeError) as e:
                raise CorruptStore(path, f"bad record {key!r}: {e}") from e

        store = cls(output_root, records)
        if len(store._by_path) != len(records):
            raise CorruptStore(path, "multiple identities share one canonical path")
        store.logger.debug(f"Loaded {len(records)} library records from {path}")
        return store

    def initialize(self) -> None:
        """Create the metadata subtree, writing an empty store on first run."""
        self.meta_root.mkdir(parents=True, exist_ok=True)
        if not self.store_path.exists():
            self.logger.info(f"Creating library metadata at {self.store_path}")
            self._write()

    def lookup(self, identity: ContentIdentity) -> Optional[LibraryRecord]:
        return self._records.get(identity)

    def find_by_path(self, path: Union[str, Path]) -> Optional[LibraryRecord]:
        """Return the record whose canonical path is `path`, if any."""
        identity = self._by_path.get(self.relative_path(path))
        return self._records[identity] if identity is not None else None

    def record(self, identity: ContentIdentity, path: Union[str, Path], source: Union[str, Path],
               timestamp: Optional[datetime] = None, reconciled: bool = False) -> LibraryRecord:
        """Insert a new record. Callers must lookup() first."""
        with self.lock:
            existing = self._records.get(identity)
            if existing is not None:
                raise DuplicateIdentity(identity.encode(), existing.path)

            rel = self.relative_path(path)
            if rel in self._by_path:
                raise StoreError(f"Canonical path {rel} is already recorded for "
                                 f"{self._by_path[rel].encode()}")

            record = LibraryRecord(
                identity=identity,
                path=rel,
                source=str(source),
                discovered_at=(timestamp or datetime.now()).replace(microsecond=0),
                reconciled=reconciled,
            )
            self._records[identity] = record
            self._by_path[rel] = identity
            self.dirty = True
            return record

    def update_path(self, identity: ContentIdentity, path: Union[str, Path]) -> LibraryRecord:
        """Repoint an existing record at a new canonical path."""
        with self.lock:
            current = self._records.get(identity)
            if current is None:
                raise StoreError(f"No record for {identity.encode()}")

            rel = self.relative_path(path)
            owner = self._by_path.get(rel)
            if owner is not None and owner != identity:
                raise StoreError(f"Canonical path {rel} is already recorded for {owner.encode()}")

            updated = LibraryRecord(identity, rel, current.source, current.discovered_at,
                                    current.reconciled)
            del self._by_path[current.path]
            self._records[identity] = updated
            self._by_path[rel] = identity
            self.dirty = True
            return updated

    def persist(self) -> None:
        """Atomically write the current mapping to disk if it changed."""
        with self.lock:
            if not self.dirty:
                return
            self._write()
            self.dirty = False

    def _write(self) -> None:
        payload = {
            "version": STORE_VERSION,
            "updated_at": datetime.now().isoformat(timespec="seconds"),
            "records": {
                ident.encode(): rec.to_dict()
                for ident, rec in sorted(self._records.items())
            },
        }

        tmp_name = None
        try:
            self.meta_root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{STORE_FILENAME}.", suffix=".tmp",
                                            dir=self.meta_root)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.store_path)
            tmp_name = None
            self._fsync_directory()
        except OSError as e:
            raise StoreError(f"Could not persist library metadata to {self.store_path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        self.logger.debug(f"Persisted {len(self._records)} library records")

    def _fsync_directory(self) -> None:
        # Not every platform allows opening a directory for fsync
        try:
            fd = os.open(self.meta_root, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(fd)
        except OSError as e:
            self.logger.debug(f"Directory fsync unsupported for {self.meta_root}: {e}")
        finally:
            os.close(fd)

    def relative_path(self, path: Union[str, Path]) -> str:
        """Normalize a path to the POSIX form stored in records."""
        path = Path(path)
        if path.is_absolute():
            path = path.relative_to(self.output_root)
        return PurePosixPath(*path.parts).as_posix()

    def absolute_path(self, record: LibraryRecord) -> Path:
        return self.output_root.joinpath(*PurePosixPath(record.path).parts)

    def records(self) -> Iterator[LibraryRecord]:
        """Iterate records in identity order."""
        for identity in sorted(self._records):
            yield self._records[identity]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._records
