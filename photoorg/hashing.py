"""
Content identity: a SHA-256 digest of a file's full byte stream.
"""

import hashlib
from pathlib import Path

from .constants import HASH_CHUNK_SIZE
from .errors import HashError


class ContentIdentity:
    """Fixed-size digest identifying a file by its bytes alone."""

    __slots__ = ("_digest",)

    DIGEST_SIZE = hashlib.sha256().digest_size

    def __init__(self, digest: bytes):
        if len(digest) != self.DIGEST_SIZE:
            raise ValueError(f"Expected {self.DIGEST_SIZE}-byte digest, got {len(digest)}")
        self._digest = bytes(digest)

    @classmethod
    def decode(cls, value: str) -> "ContentIdentity":
        """Parse a hex-encoded identity."""
        try:
            digest = bytes.fromhex(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid identity {value!r}: {e}")
        return cls(digest)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ContentIdentity":
        return cls(hashlib.sha256(data).digest())

    def encode(self) -> str:
        return self._digest.hex()

    @property
    def digest(self) -> bytes:
        return self._digest

    @property
    def short(self) -> str:
        return self.encode()[:12]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContentIdentity):
            return NotImplemented
        return self._digest == other._digest

    def __lt__(self, other: "ContentIdentity") -> bool:
        return self._digest < other._digest

    def __hash__(self) -> int:
        return hash(self._digest)

    def __repr__(self) -> str:
        return f"ContentIdentity({self.encode()})"

    def __str__(self) -> str:
        return self.encode()


def hash_file(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> ContentIdentity:
    """Compute the content identity of a file.

    Raises HashError if the file cannot be opened or read to the end.
    """
    hasher = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as e:
        raise HashError(Path(path), e.strerror or str(e)) from e
    return ContentIdentity(hasher.digest())
