"""
SyncFlow - Progress Tracking
Incremental parsing of rsync --progress output into a per-job progress snapshot.
"""

import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Match, Optional

from . import SPEED_HISTORY_CAPACITY
from .units import format_bytes, format_speed, parse_size, parse_speed

logger = logging.getLogger(__name__)

CURRENT_FILE_MAX_LENGTH = 50
STARTING_TRANSFER = "Starting transfer..."


@dataclass
class SpeedSample:
    """A single speed observation"""
    timestamp: float
    bytes_per_second: float


@dataclass
class FileCount:
    """Files done out of files known to rsync"""
    current: int = 0
    total: int = 0


@dataclass
class ProgressSnapshot:
    """Structured view of a job's transfer progress"""
    percentage: int = 0
    current_speed: str = "0.00B/s"
    current_speed_bps: float = 0.0
    average_speed_bps: float = 0.0
    max_speed_bps: float = 0.0
    min_speed_bps: Optional[float] = None
    transferred: str = "0.00B"
    transferred_bytes: int = 0
    total_bytes: Optional[int] = None
    eta: str = ""
    current_file: str = ""
    file_count: FileCount = field(default_factory=FileCount)
    speed_history: Deque[SpeedSample] = field(
        default_factory=lambda: deque(maxlen=SPEED_HISTORY_CAPACITY)
    )
    last_update: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percentage": self.percentage,
            "current_speed": self.current_speed,
            "average_speed": format_speed(self.average_speed_bps),
            "max_speed": format_speed(self.max_speed_bps),
            "min_speed": format_speed(self.min_speed_bps) if self.min_speed_bps is not None else None,
            "transferred": self.transferred,
            "transferred_bytes": self.transferred_bytes,
            "total_bytes": self.total_bytes,
            "eta": self.eta,
            "current_file": self.current_file,
            "file_count": {"current": self.file_count.current, "total": self.file_count.total},
            "speed_history": [
                {"timestamp": s.timestamp, "speed": s.bytes_per_second}
                for s in self.speed_history
            ],
            "last_update": self.last_update,
        }


# Example: "  2506567 100%   42.84MB/s    0:00:00 (xfer#161, to-check=429/724)"
# Newer rsync: "  2.51M 100%   42.84MB/s    0:00:00 (xfr#161, to-chk=429/724)"
_PROGRESS_HEAD = (
    r'^(?P<bytes>\d+(?:,\d{3})*(?:\.\d+)?[KMGT]?)\s+'
    r'(?P<percent>\d{1,3})%\s+'
    r'(?P<speed>\d+(?:\.\d+)?[kKMGT]?B/s)\s+'
    r'(?P<time>\d+:\d{2}:\d{2})'
)
COMBINED_PROGRESS_PATTERN = re.compile(
    _PROGRESS_HEAD
    + r'\s+\((?:xfer|xfr)#(?P<xfer>\d+),\s*(?:to-check|to-chk|ir-chk)=(?P<remaining>\d+)/(?P<total>\d+)\)'
)
BARE_PROGRESS_PATTERN = re.compile(_PROGRESS_HEAD)
PERCENT_FRAGMENT_PATTERN = re.compile(
    r'^(?:\d+(?:,\d{3})*(?:\.\d+)?[KMGT]?\s+)?\d{1,3}%(?:\s+\d+(?:\.\d+)?[kKMGT]?B/s)?\s*$'
)
SENT_SUMMARY_PATTERN = re.compile(r'^sent\s+[\d.,]+[KMGT]?\s+bytes', re.IGNORECASE)
TOTAL_SIZE_PATTERN = re.compile(r'total size is\s+(?P<size>\d+(?:,\d{3})*(?:\.\d+)?[KMGT]?)')

SUMMARY_PHRASES = (
    "receiving file list",
    "building file list",
    "sending incremental file list",
    "receiving incremental file list",
    "created directory",
    "total size is",
    "speedup is",
    "number of files",
    "number of created files",
    "number of deleted files",
    "number of regular files transferred",
    "total file size",
    "total transferred file size",
    "literal data",
    "matched data",
    "file list size",
    "file list generation time",
    "file list transfer time",
    "total bytes sent",
    "total bytes received",
    "delta-transmission",
)


@dataclass
class LineRule:
    """One entry of the parser's priority list: the first matching rule handles the line"""
    name: str
    predicate: Callable[[str], Optional[Any]]
    handler: Callable[["ProgressParser", Any, str], None]


def _is_summary_line(line: str) -> bool:
    lowered = line.lower()
    return lowered.startswith(SUMMARY_PHRASES) or bool(SENT_SUMMARY_PATTERN.match(line))


def _looks_like_file_name(line: str) -> bool:
    if PERCENT_FRAGMENT_PATTERN.match(line):
        return False
    return '(' not in line and ')' not in line


def _file_list_done(line: str) -> bool:
    lowered = line.lower()
    return "receiving file list" in lowered and "done" in lowered


def truncate_file_name(name: str, limit: int = CURRENT_FILE_MAX_LENGTH) -> str:
    """Shorten a file name for display"""
    if len(name) > limit:
        return name[:limit - 3] + "..."
    return name


class ProgressParser:
    """Feeds rsync output chunks into a ProgressSnapshot.

    Each line is matched against ``RULES`` in order, most specific first.
    ``on_progress`` is called after every speed/byte update so the owner can
    publish a job-change notification.
    """

    def __init__(self, snapshot: ProgressSnapshot,
                 on_progress: Optional[Callable[[], None]] = None,
                 clock: Callable[[], float] = time.time):
        self.snapshot = snapshot
        self._on_progress = on_progress
        self._clock = clock

    def feed(self, chunk: str) -> None:
        """Parse one raw output chunk (possibly several lines)"""
        if not chunk:
            return

        for raw_line in re.split(r'[\r\n]+', chunk):
            line = raw_line.strip()
            if line:
                self.parse_line(line)

    def parse_line(self, line: str) -> Optional[str]:
        """Apply the first matching rule; returns the rule name or None"""
        for rule in RULES:
            match = rule.predicate(line)
            if match:
                rule.handler(self, match, line)
                return rule.name
        return None

    def _handle_combined(self, match: Match, line: str):
        total = int(match.group('total'))
        remaining = int(match.group('remaining'))
        current = min(max(total - remaining, 0), total)

        self.snapshot.file_count.total = total
        self.snapshot.file_count.current = current

        if total > 0:
            percentage = round(current / total * 100)
        else:
            percentage = 0
        self.snapshot.percentage = min(max(percentage, 0), 100)

        self._update_speed(match)

    def _handle_bare(self, match: Match, line: str):
        self._update_speed(match)

    def _handle_file_list_done(self, match: Any, line: str):
        self.snapshot.current_file = STARTING_TRANSFER

    def _handle_total_size(self, match: Match, line: str):
        self.snapshot.total_bytes = parse_size(match.group('size'))

    def _handle_summary(self, match: Any, line: str):
        logger.debug(f"Ignoring summary line: {line}")

    def _handle_current_file(self, match: Any, line: str):
        self.snapshot.current_file = truncate_file_name(line)

    def _update_speed(self, match: Match):
        snapshot = self.snapshot
        now = self._clock()
        speed_token = match.group('speed')
        speed = parse_speed(speed_token)

        snapshot.current_speed = speed_token
        snapshot.current_speed_bps = speed
        snapshot.transferred_bytes = parse_size(match.group('bytes'))
        snapshot.transferred = format_bytes(snapshot.transferred_bytes)
        snapshot.eta = match.group('time')
        snapshot.last_update = now

        # deque(maxlen=60) evicts the oldest sample
        snapshot.speed_history.append(SpeedSample(timestamp=now, bytes_per_second=speed))

        if speed > 0:
            snapshot.max_speed_bps = max(snapshot.max_speed_bps, speed)
            if snapshot.min_speed_bps is None or speed < snapshot.min_speed_bps:
                snapshot.min_speed_bps = speed

        samples = [s.bytes_per_second for s in snapshot.speed_history]
        snapshot.average_speed_bps = sum(samples) / len(samples)

        if self._on_progress:
            self._on_progress()


RULES: List[LineRule] = [
    LineRule("combined_progress", COMBINED_PROGRESS_PATTERN.match, ProgressParser._handle_combined),
    LineRule("bare_progress", BARE_PROGRESS_PATTERN.match, ProgressParser._handle_bare),
    LineRule("file_list_done", _file_list_done, ProgressParser._handle_file_list_done),
    LineRule("total_size", TOTAL_SIZE_PATTERN.search, ProgressParser._handle_total_size),
    LineRule("summary", _is_summary_line, ProgressParser._handle_summary),
    LineRule("current_file", _looks_like_file_name, ProgressParser._handle_current_file),
]
