"""
Smart job naming.

Derives a readable job name from what is being transferred and where it is
going, e.g. "Camera Import (312 items) - Oct 19 14:05".
"""

import os
import logging
from datetime import datetime
from typing import Callable, Optional

from .analyzer import ContentType, FolderAnalysis, FolderAnalyzer, HeuristicResult

logger = logging.getLogger(__name__)

BACKUP_TARGET_KEYWORDS = ("backup", "archive", "time machine")


def is_backup_destination(name: str) -> bool:
    """Whether a folder name suggests a backup or archive destination"""
    lowered = name.lower()
    return any(keyword in lowered for keyword in BACKUP_TARGET_KEYWORDS)


def fallback_name(source: str, is_move: bool, now: Optional[datetime] = None) -> str:
    """Name built from the raw path only, used when analysis is not possible"""
    now = now or datetime.now()
    operation = "Move" if is_move else "Copy"
    base_name = os.path.basename(source.rstrip("/\\")) or source
    return f"{operation} {base_name} - {now.strftime('%Y-%m-%d %H:%M:%S')}"


class SmartNamer:
    """Builds job names from folder analysis."""

    def __init__(self, analyzer: Optional[FolderAnalyzer] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.analyzer = analyzer or FolderAnalyzer()
        self._clock = clock

    def generate_name(self, source: str, target: str, is_move: bool = False) -> HeuristicResult[str]:
        now = self._clock()
        try:
            source_result = self.analyzer.analyze(source)
            target_result = self.analyzer.analyze(target)

            if source_result.fallback_used:
                return HeuristicResult(
                    fallback_name(source, is_move, now),
                    fallback_used=True,
                    error=source_result.error,
                )

            label = self.describe(source_result.value, target_result.value)
            return HeuristicResult(f"{label} - {now.strftime('%b %d %H:%M')}")

        except Exception as e:
            logger.warning(f"Smart naming failed for {source}: {e}")
            return HeuristicResult(fallback_name(source, is_move, now), fallback_used=True, error=str(e))

    def describe(self, source: FolderAnalysis, target: FolderAnalysis) -> str:
        """Label for a source/target pair, without the timestamp suffix"""
        if source.content_type == ContentType.PHOTOS and "DCIM" in source.name.upper():
            return f"Camera Import ({source.file_count} items)"

        type_label = source.content_type.label
        if is_backup_destination(target.name):
            return f"{type_label} to {target.name}"

        return f"{type_label}: {source.name} ({source.file_count} files)"
