"""
Shared constants, logger/console accessors and external tool detection.
"""

import logging
import shutil
from typing import Optional

from rich.console import Console

PROGRAM = "photoorg"

# Reserved metadata subtree under the output root
META_DIRNAME = "_pometa"
STORE_FILENAME = "library.json"
STORE_VERSION = 1

# File extension constants (lowercase, leading dot)
JPG_EXTENSIONS = (".jpg", ".jpeg", ".jpe")
RAW_EXTENSIONS = (
    ".3fr", ".3pr", ".arw", ".ce1", ".ce2", ".cib", ".cmt", ".cr2", ".cr3",
    ".craw", ".crw", ".dc2", ".dcr", ".dng", ".erf", ".exf", ".fff", ".fpx",
    ".heic", ".heif", ".iiq", ".kc2", ".kdc", ".mdc", ".mef", ".mfw", ".mos",
    ".mrw", ".nef", ".nrw", ".orf", ".pef", ".png", ".ptx", ".raf", ".raw",
    ".rw2", ".rwl", ".sr2", ".srf", ".srw", ".tif", ".tiff", ".x3f",
)
PHOTO_EXTENSIONS = JPG_EXTENSIONS + RAW_EXTENSIONS
MOVIE_EXTENSIONS = (
    ".3g2", ".3gp", ".avi", ".flv", ".m2ts", ".m4v", ".mkv", ".mov", ".mp4",
    ".mpeg", ".mpg", ".mts", ".ogv", ".vob", ".webm", ".wmv",
)
VALID_EXTENSIONS = PHOTO_EXTENSIONS + MOVIE_EXTENSIONS

# Sort-date sources, in default precedence order
DATE_SOURCES = ("exif", "filename", "mtime")

HASH_CHUNK_SIZE = 1024 * 1024

# In-flight cross-device copies live in <output>/_pometa/tmp, named <identity>.partial
STAGING_DIRNAME = "tmp"
PARTIAL_SUFFIX = ".partial"

_console: Optional[Console] = None


def get_console() -> Console:
    """Return the shared rich console."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def get_logger() -> logging.Logger:
    """Return the program logger."""
    return logging.getLogger(PROGRAM)


def check_tool_availability(cmd: str) -> bool:
    """Check whether an external command is on PATH."""
    return shutil.which(cmd) is not None


def exiftool_available() -> bool:
    return check_tool_availability("exiftool")


def ffprobe_available() -> bool:
    return check_tool_availability("ffprobe")


def sips_available() -> bool:
    return check_tool_availability("sips")
