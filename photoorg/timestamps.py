"""Sort-date extraction from embedded metadata, file names and file stat."""

import json
import re
import subprocess
import zoneinfo
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from .constants import (DATE_SOURCES, MOVIE_EXTENSIONS, exiftool_available, ffprobe_available,
                        get_logger, sips_available)


logger = get_logger()

EXIF_DATE_TAGS = (
    "SubSecCreateDate",
    "CreationDate",
    "CreateDate",
    "CreationTime",
    "CreateTime",
    "ProfileDateTime",
    "DateTimeOriginal",
)

VIDEO_DATE_TAGS = ("com.apple.quicktime.creationdate", "creation_time")

# Dates embedded in camera/phone file names, most specific first
FILENAME_DATE_PATTERNS = (
    re.compile(r'(?<!\d)(\d{4})(\d{2})(\d{2})[_-](\d{2})(\d{2})(\d{2})(?!\d)'),
    re.compile(r'(?<!\d)(\d{4})-(\d{2})-(\d{2})[ _T.-](\d{2})[.:-](\d{2})[.:-](\d{2})(?!\d)'),
    re.compile(r'(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)'),
    re.compile(r'(?:IMG|VID|PXL|DSC|PANO)[_-](\d{4})(\d{2})(\d{2})(?!\d)', re.IGNORECASE),
)

EARLIEST_YEAR = 1970


class DateResolver:
    """Resolve a file's sort date from an ordered list of sources.

    Sources are tried in order and the first one yielding a date wins:
      exif      embedded capture time (exiftool, ffprobe for videos, sips)
      filename  a date encoded in the file name
      mtime     filesystem modification time
    """

    def __init__(self, date_sources: Sequence[str] = DATE_SOURCES, tz_name: str = "UTC"):
        unknown = [s for s in date_sources if s not in DATE_SOURCES]
        if unknown:
            raise ValueError(f"Unknown date source(s): {', '.join(unknown)}")
        self.date_sources = tuple(date_sources)
        self.tz_name = tz_name
        self.tz = zoneinfo.ZoneInfo(tz_name)

    def resolve(self, file_path: Path) -> Tuple[Optional[datetime], Optional[str]]:
        """Return (sort_date, source_name), or (None, None) if no source applies."""
        for source in self.date_sources:
            if source == "exif":
                found = self.embedded_date(file_path)
            elif source == "filename":
                found = parse_filename_date(file_path.name)
            else:
                found = datetime.fromtimestamp(file_path.stat().st_mtime)

            if found is not None:
                logger.debug(f"Sort date for {file_path.name}: {found} ({source})")
                return found, source

        return None, None

    def embedded_date(self, file_path: Path) -> Optional[datetime]:
        """Get the embedded capture date using whichever tools are installed."""
        if file_path.suffix.lower() in MOVIE_EXTENSIONS:
            video_date = self.video_creation_date(file_path)
            if video_date:
                return video_date

        if exiftool_available():
            exif_date = self.exiftool_creation_date(file_path)
            if exif_date:
                return exif_date

        if sips_available():
            return sips_creation_date(file_path)

        return None

    def exiftool_creation_date(self, image_path: Path) -> Optional[datetime]:
        try:
            result = subprocess.run([
                "exiftool",
                "-q",
                "-json",
                "-d", "%Y-%m-%dT%H:%M:%S%3f%z",  # ISO 8601 compliant date-string
                *[f"-{tag}" for tag in EXIF_DATE_TAGS],
                str(image_path)],
                capture_output=True, text=True, check=True
            )
            exif_data = json.loads(result.stdout)[0]
        except (subprocess.CalledProcessError, json.JSONDecodeError, IndexError, OSError) as e:
            logger.debug(f"exiftool gave no date for {image_path}: {e}")
            return None

        return self.canonical_exif_date(exif_data)

    def canonical_exif_date(self, dates: Dict[str, str]) -> Optional[datetime]:
        """Pick the first parseable capture-date tag in priority order."""
        for date_field in EXIF_DATE_TAGS:
            value = dates.get(date_field)
            if not isinstance(value, str):
                continue
            parsed = parse_iso8601_datetime(value, self.tz)
            if parsed:
                return parsed
        return None

    def video_creation_date(self, file_path: Path) -> Optional[datetime]:
        """Extract creation date from video metadata with Apple QuickTime priority."""
        if not ffprobe_available():
            return None

        try:
            result = subprocess.run([
                "ffprobe", "-v", "quiet",
                "-print_format", "json",
                "-show_format",
                str(file_path)
            ], capture_output=True, text=True, check=True)
            data = json.loads(result.stdout)
        except (subprocess.CalledProcessError, json.JSONDecodeError, OSError) as e:
            logger.debug(f"ffprobe failed for {file_path}: {e}")
            return None

        tags = data.get("format", {}).get("tags", {})
        for date_key in VIDEO_DATE_TAGS:
            date_str = tags.get(date_key)
            if date_str:
                creation_date = parse_iso8601_datetime(date_str, self.tz)
                if creation_date:
                    return creation_date

        logger.debug(f"No creation date tag found for {file_path}")
        return None


def sips_creation_date(image_path: Path) -> Optional[datetime]:
    """Read the creation timestamp reported by macOS sips."""
    try:
        result = subprocess.run(
            ["sips", "-g", "creation", str(image_path)],
            capture_output=True, text=True, check=True
        )
    except (subprocess.CalledProcessError, OSError):
        return None

    for line in result.stdout.split('\n'):
        if 'creation:' in line:
            try:
                date_str = line.split('creation: ')[1].strip()
                return datetime.strptime(date_str, "%Y:%m:%d %H:%M:%S")
            except (IndexError, ValueError):
                return None
    return None


def parse_filename_date(name: str) -> Optional[datetime]:
    """Find a plausible calendar date embedded in a file name."""
    for pattern in FILENAME_DATE_PATTERNS:
        for match in pattern.finditer(name):
            parts = [int(p) for p in match.groups()]
            try:
                found = datetime(*parts)
            except ValueError:
                continue
            if EARLIEST_YEAR <= found.year <= datetime.now().year + 1:
                return found
    return None


def parse_iso8601_datetime(timestamp_str: str, tz: zoneinfo.ZoneInfo) -> Optional[datetime]:
    """Parse ISO 8601 or EXIF date-time string with timezone awareness.

    Handles both ISO 8601 (2025-05-06T19:41:34-0400) and raw EXIF
    (2025:05:06 19:41:34.745-04:00) date formats. Offsets are converted to
    `tz` and the result is returned naive; strings without an offset are
    taken as UTC.
    """
    pattern = r'(\d{4}[-:]\d{2}[-:]\d{2})[T ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:?\d{2})?'
    match = re.match(pattern, timestamp_str.strip())
    if not match:
        return None

    date_part = match.group(1).replace(':', '-')
    time_part = match.group(2)
    fractional_part = match.group(3)
    timezone_part = match.group(4)

    datetime_str = f"{date_part} {time_part}"
    try:
        if fractional_part:
            milliseconds = fractional_part.ljust(3, '0')[:3]
            base_dt = datetime.strptime(f"{datetime_str}.{milliseconds}", "%Y-%m-%d %H:%M:%S.%f")
        else:
            base_dt = datetime.strptime(datetime_str, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        # e.g. "0000:00:00 00:00:00" written by some cameras
        return None

    if timezone_part and timezone_part != 'Z':
        tz_str = timezone_part
        if ':' not in tz_str:
            tz_str = f"{tz_str[:-2]}:{tz_str[-2:]}"
        sign = 1 if tz_str[0] == '+' else -1
        offset_minutes = sign * (int(tz_str[1:3]) * 60 + int(tz_str[4:6]))
        aware_dt = base_dt.replace(tzinfo=timezone(timedelta(minutes=offset_minutes)))
    else:
        aware_dt = base_dt.replace(tzinfo=timezone.utc)

    return aware_dt.astimezone(tz).replace(tzinfo=None)
