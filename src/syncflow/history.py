"""
Transfer history for SyncFlow.

This module keeps an append-only, size-capped log of finished transfers as
JSON. The history feeds similarity lookups, duration predictions and
speed-based recommendations. Storage problems are logged and never stop a
transfer.
"""

import os
import json
import logging
from dataclasses import dataclass, asdict, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from . import HISTORY_LIMIT
from .units import parse_speed

if TYPE_CHECKING:
    from .jobs import Job

logger = logging.getLogger(__name__)

HISTORY_FILE_NAME = "transfer-history.json"


@dataclass(frozen=True)
class HistoryRecord:
    """Summary of a finished job."""
    id: str
    name: str
    source: str
    target: str
    is_move: bool
    status: str
    start_time: Optional[str]
    end_time: Optional[str]
    duration_ms: Optional[int]
    file_count: int
    transferred: str
    average_speed: str
    recorded_at: str

    @classmethod
    def from_job(cls, job: "Job") -> "HistoryRecord":
        duration_ms = None
        if job.started_at and job.ended_at:
            duration_ms = int((job.ended_at - job.started_at).total_seconds() * 1000)

        progress = job.progress_data
        return cls(
            id=job.id,
            name=job.name,
            source=job.source,
            target=job.target,
            is_move=job.is_move,
            status=job.status.value,
            start_time=job.started_at.isoformat() if job.started_at else None,
            end_time=job.ended_at.isoformat() if job.ended_at else None,
            duration_ms=duration_ms,
            file_count=progress.file_count.total,
            transferred=progress.transferred,
            average_speed=progress.to_dict()["average_speed"],
            recorded_at=datetime.now().isoformat(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TransferHistory:
    """Newest-first history of finished transfers, persisted after every append."""

    def __init__(self, history_file: str, limit: int = HISTORY_LIMIT):
        self.history_file = Path(history_file).expanduser()
        self.limit = limit
        self.records: List[HistoryRecord] = self._load()

    def _load(self) -> List[HistoryRecord]:
        if not self.history_file.exists():
            logger.info(f"No transfer history at {self.history_file}, starting empty")
            return []

        try:
            with open(self.history_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("history file does not contain a list")
            records = [HistoryRecord.from_dict(item) for item in data]
            logger.info(f"Loaded {len(records)} history records")
            return records[:self.limit]

        except Exception as e:
            logger.error(f"Error loading transfer history from {self.history_file}: {e}")
            return []

    def save(self) -> bool:
        """Write the full history to disk"""
        try:
            self.history_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = self.history_file.with_suffix(".tmp")
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump([record.to_dict() for record in self.records], f, indent=2)
            os.replace(tmp_file, self.history_file)
            return True

        except Exception as e:
            logger.error(f"Error saving transfer history: {e}")
            return False

    def record_transfer(self, job: "Job") -> HistoryRecord:
        """Add a finished job to the front of the history and persist it"""
        record = HistoryRecord.from_job(job)
        self.records.insert(0, record)
        del self.records[self.limit:]

        logger.info(f"Recorded {record.status} transfer '{record.name}'")
        self.save()
        return record

    def get_recent(self, limit: int = 10) -> List[HistoryRecord]:
        return self.records[:max(limit, 0)]

    def get_similar_transfers(self, source: str, target: str) -> List[HistoryRecord]:
        """Records sharing the source, the target or the source folder name"""
        source_name = _base_name(source)
        return [
            record for record in self.records
            if record.source == source
            or record.target == target
            or (source_name and _base_name(record.source) == source_name)
        ]

    def predict_transfer_time(self, file_count: int) -> Optional[int]:
        """Predict a transfer's duration in seconds from past per-file times.

        Returns None when no record has both a file count and a duration.
        """
        per_file_ms = [
            record.duration_ms / record.file_count
            for record in self.records
            if record.file_count and record.file_count > 0
            and record.duration_ms and record.duration_ms > 0
        ]
        if not per_file_ms:
            return None

        average = sum(per_file_ms) / len(per_file_ms)
        return round(average * file_count / 1000)

    def get_statistics(self) -> Dict[str, Any]:
        """Aggregate numbers for display"""
        total = len(self.records)
        completed = sum(1 for r in self.records if r.status == "completed")
        durations = [r.duration_ms for r in self.records if r.duration_ms]

        return {
            "total_transfers": total,
            "completed": completed,
            "failed": sum(1 for r in self.records if r.status == "failed"),
            "success_rate": (completed / total * 100) if total else 0.0,
            "average_duration_seconds": (sum(durations) / len(durations) / 1000) if durations else 0.0,
            "total_files": sum(r.file_count for r in self.records),
        }


def average_speed_bps(records: List[HistoryRecord]) -> Optional[float]:
    """Mean of the recorded average speeds, ignoring records without one"""
    speeds = [parse_speed(r.average_speed) for r in records]
    speeds = [s for s in speeds if s > 0]
    if not speeds:
        return None
    return sum(speeds) / len(speeds)


def _base_name(path: str) -> str:
    return os.path.basename(path.rstrip("/\\")) if path else ""
