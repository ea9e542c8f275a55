"""
SyncFlow - Error Analysis
Classification of rsync error output into known failure categories with remediation steps.
"""

import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Pattern

logger = logging.getLogger(__name__)


class SyncflowError(Exception):
    """Base class for SyncFlow errors"""
    pass


class ErrorCategory(Enum):
    """Known transfer failure categories"""
    PERMISSION = "permission"
    DISK_FULL = "disk_full"
    NETWORK = "network"
    SOURCE_MISSING = "source_missing"
    NAME_COLLISION = "name_collision"
    INVALID_ARGUMENTS = "invalid_arguments"
    TIMEOUT = "timeout"
    UNSUPPORTED_OPTION = "unsupported_option"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorPattern:
    """Row of the classification table"""
    category: ErrorCategory
    pattern: Pattern
    title: str
    explanation: str
    suggestions: List[str] = field(default_factory=list)


@dataclass
class ClassifiedError:
    """Analysis of a raw error message"""
    category: ErrorCategory
    title: str
    explanation: str
    suggestions: List[str]
    original_error: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "title": self.title,
            "explanation": self.explanation,
            "suggestions": list(self.suggestions),
            "original_error": self.original_error,
        }


# Evaluated in order against the lower-cased message; the first match wins
ERROR_PATTERNS: List[ErrorPattern] = [
    ErrorPattern(
        ErrorCategory.PERMISSION,
        re.compile(r"permission denied|operation not permitted|access denied|insufficient privileges"),
        "Permission Denied",
        "rsync was not allowed to read from the source or write to the destination.",
        [
            "Check that you have read access to the source folder",
            "Check that you have write access to the destination folder",
            "Grant the terminal Full Disk Access or run with the required privileges",
        ],
    ),
    ErrorPattern(
        ErrorCategory.DISK_FULL,
        re.compile(r"no space left on device|disk full|quota exceeded|file system full"),
        "Destination Full",
        "The destination ran out of free space during the transfer.",
        [
            "Free up space on the destination drive",
            "Transfer to a destination with more free space",
            "Split the transfer into smaller folders",
        ],
    ),
    ErrorPattern(
        ErrorCategory.NETWORK,
        re.compile(
            r"connection (refused|reset|closed|unexpectedly closed)|network is unreachable|"
            r"no route to host|broken pipe|host is down|could not resolve|name or service not known"
        ),
        "Network Error",
        "The connection to the remote host or network share was lost.",
        [
            "Check your network connection",
            "Make sure the network drive is still mounted",
            "Restart the job to resume from the partially transferred files",
        ],
    ),
    ErrorPattern(
        ErrorCategory.SOURCE_MISSING,
        re.compile(r"no such file or directory|change_dir .* failed|link_stat .* failed"),
        "Source Not Found",
        "rsync could not find the source folder or one of its files.",
        [
            "Check that the source folder still exists",
            "Reconnect the drive holding the source folder",
            "Select the source folder again",
        ],
    ),
    ErrorPattern(
        ErrorCategory.NAME_COLLISION,
        re.compile(r"file exists|already exists|cannot overwrite|is a directory|not a directory"),
        "Name Conflict at Destination",
        "A file or folder with the same name is in the way at the destination.",
        [
            "Rename or remove the conflicting item at the destination",
            "Choose a different destination folder",
        ],
    ),
    ErrorPattern(
        ErrorCategory.INVALID_ARGUMENTS,
        re.compile(r"syntax or usage error|invalid argument|unexpected remote arg|protocol incompatibility"),
        "Invalid Transfer Options",
        "rsync rejected the command line it was started with.",
        [
            "Check the configured rsync flags",
            "Make sure source and target paths are valid",
            "Update rsync to a recent version",
        ],
    ),
    ErrorPattern(
        ErrorCategory.TIMEOUT,
        re.compile(r"timed out|timeout"),
        "Transfer Timed Out",
        "rsync stopped receiving data for too long.",
        [
            "Check whether the source or destination drive went to sleep",
            "Check your network connection",
            "Restart the job to continue where it stopped",
        ],
    ),
    ErrorPattern(
        ErrorCategory.UNSUPPORTED_OPTION,
        re.compile(r"unrecognized option|unknown option|not supported|unsupported"),
        "Unsupported Option",
        "The installed rsync does not support one of the requested options.",
        [
            "Install a newer rsync (3.x or later)",
            "Remove the unsupported flag from the rsync settings",
        ],
    ),
]

GENERIC_ERROR = ErrorPattern(
    ErrorCategory.UNKNOWN,
    re.compile(r"$^"),
    "Transfer Error",
    "rsync reported an error that could not be identified.",
    [
        "Review the full error message below",
        "Check that both folders are accessible",
        "Restart the job",
    ],
)


class ErrorAnalyzer:
    """Maps raw error text to a known failure category"""

    def __init__(self, patterns: List[ErrorPattern] = None):
        self.patterns = patterns if patterns is not None else ERROR_PATTERNS

    def analyze(self, error_text: Any) -> ClassifiedError:
        """Classify an error message. Never raises."""
        original = "" if error_text is None else str(error_text)
        lowered = original.lower()

        entry = GENERIC_ERROR
        for candidate in self.patterns:
            if candidate.pattern.search(lowered):
                entry = candidate
                break

        logger.debug(f"Classified error as {entry.category.value}: {original.strip()[:80]}")
        return ClassifiedError(
            category=entry.category,
            title=entry.title,
            explanation=entry.explanation,
            suggestions=list(entry.suggestions),
            original_error=original,
        )
