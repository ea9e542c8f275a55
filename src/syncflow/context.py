"""
Application context for SyncFlow.

One SyncflowContext is built at startup and handed to whatever drives the
application (the CLI, a GUI, tests). It wires the job manager to the history
store, heuristics and settings, and exposes the query operations a user
interface needs.
"""

import os
import logging
from typing import Any, Dict, List, Optional

from .analyzer import FolderAnalyzer, HeuristicResult
from .config import (
    LastUsedSettings, SettingsManager, SyncflowSettings, SETTINGS_FILE_NAME,
)
from .errors import ClassifiedError, ErrorAnalyzer
from .events import EventBus
from .history import HistoryRecord, TransferHistory
from .jobs import Job, JobConfig, JobManager, StartResult
from .naming import SmartNamer
from .optimizer import Recommendation, TransferOptimizer
from .sync import ProcessFactory

logger = logging.getLogger(__name__)


class SyncflowContext:
    """Everything one running SyncFlow instance needs, wired together."""

    def __init__(self, settings: Optional[SyncflowSettings] = None,
                 process_factory: Optional[ProcessFactory] = None):
        self.settings = settings or SyncflowSettings()
        self.settings_manager: Optional[SettingsManager] = None

        self.events = EventBus()
        self.analyzer = FolderAnalyzer()
        self.namer = SmartNamer(self.analyzer)
        self.error_analyzer = ErrorAnalyzer()
        self.optimizer = TransferOptimizer()
        self.history = TransferHistory(self.settings.paths.history_file)
        self.last_used = LastUsedSettings(self.settings.paths.last_used_file)

        self.manager = JobManager(
            history=self.history,
            events=self.events,
            max_concurrent_jobs=self.settings.jobs.max_concurrent_jobs,
            rsync_settings=self.settings.rsync,
            namer=self.namer if self.settings.jobs.smart_naming else None,
            error_analyzer=self.error_analyzer,
            process_factory=process_factory,
        )

    # Job operations

    def submit(self, source: str, target: str, is_move: bool = False,
               name: Optional[str] = None, start: bool = True) -> str:
        """Create a job, remember its settings and optionally start it"""
        job_id = self.manager.create_job(JobConfig(source=source, target=target, is_move=is_move, name=name))
        self.last_used.save(source, target, is_move)
        if start:
            result = self.manager.start_job(job_id)
            if result == StartResult.QUEUED:
                logger.info(f"Job {job_id} queued until a slot frees up")
        return job_id

    def list_jobs(self) -> List[Job]:
        return self.manager.list_jobs()

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.manager.get_job(job_id)

    # History queries

    def get_recent_history(self, limit: int = 10) -> List[HistoryRecord]:
        return self.history.get_recent(limit)

    def get_similar_history(self, source: str, target: str) -> List[HistoryRecord]:
        return self.history.get_similar_transfers(source, target)

    def predict_duration(self, file_count: int) -> Optional[int]:
        return self.history.predict_transfer_time(file_count)

    # Heuristics

    def classify_error(self, error_text: str) -> ClassifiedError:
        return self.error_analyzer.analyze(error_text)

    def get_recommendations(self, source: str, target: str) -> HeuristicResult[List[Recommendation]]:
        analysis = self.analyzer.analyze(source)
        result = self.optimizer.get_recommendations(analysis.value, target, self.history)
        if analysis.fallback_used and not result.fallback_used:
            # Advice is still given, but it is based on an empty analysis
            return HeuristicResult(result.value, fallback_used=True, error=analysis.error)
        return result

    def get_last_used(self) -> Optional[Dict[str, Any]]:
        return self.last_used.load()

    def close(self):
        self.manager.shutdown()


def create_context(config_dir: Optional[str] = None,
                   process_factory: Optional[ProcessFactory] = None) -> SyncflowContext:
    """Load settings from ``config_dir`` (or the default location) and build the context"""
    settings_file = os.path.join(config_dir, SETTINGS_FILE_NAME) if config_dir else None
    settings_manager = SettingsManager(settings_file)
    first_run = not os.path.exists(settings_manager.settings_file)
    settings_manager.load_settings()

    if config_dir and first_run:
        # Keep history and last-used settings next to the settings file
        settings_manager.settings.paths.storage_dir = config_dir
        settings_manager.save_settings()

    context = SyncflowContext(settings_manager.settings, process_factory=process_factory)
    context.settings_manager = settings_manager
    return context
