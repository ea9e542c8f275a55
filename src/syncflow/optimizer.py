"""
Transfer Optimizer for advisory recommendations

This module looks at what is being transferred, how past transfers went and
the time of day, and produces human-readable suggestions. Recommendations are
advisory only and never change how a job is scheduled or run.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .analyzer import ContentType, FolderAnalysis, HeuristicResult
from .history import TransferHistory, average_speed_bps
from .naming import is_backup_destination
from .units import format_speed

logger = logging.getLogger(__name__)

LARGE_TRANSFER_FILE_COUNT = 500
SLOW_SPEED_THRESHOLD = 10 * 1024 * 1024  # 10MB/s
RECENT_SAMPLE_SIZE = 10


@dataclass
class Recommendation:
    """A single piece of advice."""
    category: str
    title: str
    suggestion: str
    details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "title": self.title,
            "suggestion": self.suggestion,
            "details": self.details,
        }


class TransferOptimizer:
    """Produces recommendations from folder analysis, history and the clock."""

    def get_recommendations(self, source: FolderAnalysis, target: str,
                            history: Optional[TransferHistory] = None,
                            now: Optional[datetime] = None) -> HeuristicResult[List[Recommendation]]:
        try:
            recommendations: List[Recommendation] = []
            recommendations.extend(self._content_recommendations(source))
            recommendations.extend(self._size_recommendations(source))
            if history is not None:
                recommendations.extend(self._speed_recommendations(source, target, history))
            recommendations.extend(self._destination_recommendations(target))
            recommendations.append(self._timing_recommendation(now or datetime.now()))
            return HeuristicResult(recommendations)

        except Exception as e:
            logger.warning(f"Could not build recommendations for {source.path}: {e}")
            return HeuristicResult([], fallback_used=True, error=str(e))

    def _content_recommendations(self, source: FolderAnalysis) -> List[Recommendation]:
        if source.content_type == ContentType.PHOTOS:
            return [Recommendation(
                "content",
                "Photo Library",
                "Photos are already compressed, so compression gains little.",
                "Keep the source until the copy has been checked, especially for camera imports.",
            )]
        if source.content_type == ContentType.VIDEOS:
            return [Recommendation(
                "content",
                "Video Files",
                "Large video files benefit from resumable partial transfers.",
                "If the transfer is interrupted, restart the job to continue from the partial files.",
            )]
        return []

    def _size_recommendations(self, source: FolderAnalysis) -> List[Recommendation]:
        if source.file_count > LARGE_TRANSFER_FILE_COUNT:
            return [Recommendation(
                "size",
                "Large Transfer",
                f"{source.file_count} files will take a while to transfer.",
                "Consider running it when you do not need the drives for anything else.",
            )]
        return []

    def _speed_recommendations(self, source: FolderAnalysis, target: str,
                               history: TransferHistory) -> List[Recommendation]:
        records = history.get_similar_transfers(source.path, target) or history.get_recent(RECENT_SAMPLE_SIZE)
        average = average_speed_bps(records)
        if average is None:
            return []

        if average < SLOW_SPEED_THRESHOLD:
            return [Recommendation(
                "network",
                "Slow Transfers Detected",
                f"Past transfers averaged {format_speed(average)}.",
                "The network or one of the drives may be congested. Avoid running many jobs at once.",
            )]
        return [Recommendation(
            "performance",
            "Good Transfer Speed",
            f"Past transfers averaged {format_speed(average)}.",
            "Running several jobs in parallel should work well.",
        )]

    def _destination_recommendations(self, target: str) -> List[Recommendation]:
        name = target.rstrip("/\\").replace("\\", "/").split("/")[-1]
        if is_backup_destination(name):
            return [Recommendation(
                "backup",
                "Backup Destination",
                "Copy rather than move when writing to a backup.",
                "Keeping the originals until the backup has been verified protects against data loss.",
            )]
        return []

    def _timing_recommendation(self, now: datetime) -> Recommendation:
        hour = now.hour
        if 9 <= hour < 17:
            return Recommendation(
                "timing",
                "Business Hours",
                "Network traffic is usually highest during business hours.",
                "Large transfers may run faster in the evening or overnight.",
            )
        if 17 <= hour < 22:
            return Recommendation(
                "timing",
                "Evening Hours",
                "Network usage is moderate right now.",
                "Transfers should run at reasonable speed.",
            )
        return Recommendation(
            "timing",
            "Off-Peak Hours",
            "This is a good time for large transfers.",
            "Network and disk usage are usually low overnight.",
        )
