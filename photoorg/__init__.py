"""
photoorg - Organize a photo and video library by content identity.

Scans input directories, deduplicates files by SHA-256 content hash, sorts
new files into the library (by capture date, by default) and records every
placed file in a metadata store so repeated runs are idempotent.
"""

__version__ = "1.0.0"
__copyright__ = "MIT License"


# Public API
from .cli import main
from .config import LibraryConfig, load_config
from .hashing import ContentIdentity, hash_file
from .organizer import Organizer, Outcome, RunResult
from .policies import SortPolicy, get_policy
from .query import query
from .scanner import Candidate, Scanner, scan
from .store import LibraryRecord, MetadataStore

__all__ = [ "main", "LibraryConfig", "load_config", "ContentIdentity", "hash_file", "Organizer",
            "Outcome", "RunResult", "SortPolicy", "get_policy", "query", "Candidate", "Scanner",
            "scan", "LibraryRecord", "MetadataStore" ]
