"""
SyncFlow - Job Manager
Job registry, concurrency-capped scheduling and lifecycle of rsync transfer jobs.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Deque, Dict, List, Optional, Tuple
from uuid import uuid4

from . import DEFAULT_MAX_CONCURRENT_JOBS, KILL_GRACE_SECONDS
from .config import RsyncSettings
from .errors import ErrorAnalyzer
from .events import EventBus, EventType
from .history import TransferHistory
from .naming import SmartNamer, fallback_name
from .progress import ProgressParser, ProgressSnapshot
from .sync import ProcessFactory, RsyncProcess, build_rsync_command

logger = logging.getLogger(__name__)

JOB_LOG_LINES = 500
ERROR_TAIL_LINES = 20


class JobStatus(Enum):
    """Job lifecycle states"""
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


class StartResult(Enum):
    """Outcome of a start request"""
    STARTED = "started"
    QUEUED = "queued"    # concurrency cap reached, job waits for a free slot
    FAILED = "failed"    # unknown job, wrong state or rsync could not be spawned


@dataclass
class JobConfig:
    """What the user asked to transfer"""
    source: str
    target: str
    is_move: bool = False
    name: Optional[str] = None


@dataclass
class Job:
    """A directory transfer and its lifecycle state"""
    id: str
    name: str
    source: str
    target: str
    is_move: bool = False
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    error: Optional[str] = None
    command: Tuple[str, ...] = ()
    progress_data: ProgressSnapshot = field(default_factory=ProgressSnapshot)

    @property
    def operation(self) -> str:
        return "move" if self.is_move else "copy"

    def to_dict(self) -> Dict[str, Any]:
        def stamp(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "target": self.target,
            "is_move": self.is_move,
            "status": self.status.value,
            "progress": self.progress,
            "created_at": stamp(self.created_at),
            "started_at": stamp(self.started_at),
            "ended_at": stamp(self.ended_at),
            "paused_at": stamp(self.paused_at),
            "resumed_at": stamp(self.resumed_at),
            "error": self.error,
            "command": list(self.command),
            "progress_data": self.progress_data.to_dict(),
        }


@dataclass
class _JobRuntime:
    """Live state of one launch; never leaves the manager"""
    run_id: int
    process: RsyncProcess
    parser: ProgressParser
    stderr_tail: Deque[str] = field(default_factory=lambda: deque(maxlen=ERROR_TAIL_LINES))


class JobManager:
    """Owns all jobs and their rsync processes.

    Every mutation happens under a single re-entrant lock, so process output,
    process exits and API calls are applied one at a time. Events from a
    launch that has since been stopped, restarted or removed are dropped by
    run id.
    """

    def __init__(self, history: Optional[TransferHistory] = None,
                 events: Optional[EventBus] = None,
                 max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS,
                 rsync_settings: Optional[RsyncSettings] = None,
                 namer: Optional[SmartNamer] = None,
                 error_analyzer: Optional[ErrorAnalyzer] = None,
                 process_factory: Optional[ProcessFactory] = None):
        self.history = history
        self.events = events or EventBus()
        self.max_concurrent_jobs = max_concurrent_jobs
        self.rsync_settings = rsync_settings or RsyncSettings()
        self.namer = namer
        self.error_analyzer = error_analyzer or ErrorAnalyzer()
        self._process_factory = process_factory or RsyncProcess

        self._jobs: Dict[str, Job] = {}
        self._runtimes: Dict[str, _JobRuntime] = {}
        self._active: set = set()
        self._logs: Dict[str, Deque[str]] = {}
        self._run_counter = 0
        self._lock = threading.RLock()

    # Queries

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: job.created_at)

    def get_job_log(self, job_id: str) -> List[str]:
        with self._lock:
            return list(self._logs.get(job_id, ()))

    def running_count(self) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if job.status == JobStatus.RUNNING)

    def has_live_jobs(self) -> bool:
        """Whether any job is running, paused or waiting in the queue"""
        live = (JobStatus.RUNNING, JobStatus.PAUSED, JobStatus.QUEUED)
        with self._lock:
            return any(job.status in live for job in self._jobs.values())

    # Operations

    def create_job(self, config: JobConfig) -> str:
        """Register a new pending job and return its id"""
        name = config.name
        if not name:
            # Folder analysis runs outside the lock
            if self.namer is not None:
                name = self.namer.generate_name(config.source, config.target, config.is_move).value
            else:
                name = fallback_name(config.source, config.is_move)

        job = Job(
            id=str(uuid4()),
            name=name,
            source=config.source,
            target=config.target,
            is_move=config.is_move,
        )

        with self._lock:
            self._jobs[job.id] = job
            self._logs[job.id] = deque(maxlen=JOB_LOG_LINES)
            self._log(job, f"Created {job.operation} job '{job.name}'")
            self._notify_changed(job)

        return job.id

    def start_job(self, job_id: str) -> StartResult:
        """Start a pending or queued job, or queue it when the cap is reached"""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.debug(f"start_job: unknown job {job_id}")
                return StartResult.FAILED

            if job.status not in (JobStatus.PENDING, JobStatus.QUEUED):
                logger.debug(f"start_job: job {job_id} is {job.status.value}")
                return StartResult.FAILED

            if len(self._active) >= self.max_concurrent_jobs:
                if job.status != JobStatus.QUEUED:
                    job.status = JobStatus.QUEUED
                    self._log(job, f"Queued, {len(self._active)} jobs already running")
                    self._notify_changed(job)
                return StartResult.QUEUED

            return StartResult.STARTED if self._launch(job) else StartResult.FAILED

    def pause_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.RUNNING:
                return False

            runtime = self._runtimes.get(job_id)
            if runtime is None or not runtime.process.suspend():
                # Bookkeeping still moves to paused; resume relaunches if needed
                logger.warning(f"Could not suspend rsync for job '{job.name}'")

            job.status = JobStatus.PAUSED
            job.paused_at = datetime.now()
            self._log(job, "Paused")
            self._notify_changed(job)
            return True

    def resume_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PAUSED:
                return False

            job.resumed_at = datetime.now()
            runtime = self._runtimes.get(job_id)
            if runtime is not None and runtime.process.is_running and runtime.process.resume():
                job.status = JobStatus.RUNNING
                self._log(job, "Resumed")
                self._notify_changed(job)
                return True

            # The process is gone; run the transfer again, rsync skips what is already there
            logger.info(f"No live rsync for paused job '{job.name}', relaunching")
            self._release(job_id, force=True)
            job.status = JobStatus.PENDING
            self._log(job, "Resuming by restarting the transfer")
            return self.start_job(job_id) != StartResult.FAILED

    def stop_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status not in (JobStatus.RUNNING, JobStatus.PAUSED, JobStatus.QUEUED):
                return False

            self._release(job_id, force=False)
            job.status = JobStatus.STOPPED
            job.ended_at = datetime.now()
            self._log(job, "Stopped by user")
            self._notify_changed(job)
            self._promote_next_queued()
            return True

    def restart_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False

            self._release(job_id, force=True)
            job.status = JobStatus.PENDING
            job.progress = 0
            job.progress_data = ProgressSnapshot()
            job.started_at = None
            job.ended_at = None
            job.paused_at = None
            job.resumed_at = None
            job.error = None
            self._log(job, "Restarting")
            self._notify_changed(job)
            return self.start_job(job_id) != StartResult.FAILED

    def remove_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.pop(job_id, None)
            if job is None:
                return False

            self._release(job_id, force=True)
            self._logs.pop(job_id, None)
            logger.info(f"Removed job '{job.name}'")
            self.events.emit(EventType.JOB_REMOVED, job_id)
            self._promote_next_queued()
            return True

    def set_max_concurrent_jobs(self, value: int):
        """Change the cap and fill any newly available slots"""
        with self._lock:
            self.max_concurrent_jobs = max(1, int(value))
            while len(self._active) < self.max_concurrent_jobs and self._promote_next_queued():
                pass

    def shutdown(self):
        """Kill every live rsync; used when the application exits"""
        with self._lock:
            for job_id in list(self._runtimes):
                job = self._jobs[job_id]
                self._release(job_id, force=True)
                job.status = JobStatus.STOPPED
                job.ended_at = datetime.now()
                self._notify_changed(job)
            for job in self._jobs.values():
                if job.status == JobStatus.QUEUED:
                    job.status = JobStatus.STOPPED
                    job.ended_at = datetime.now()
                    self._notify_changed(job)

    # Internals

    def _launch(self, job: Job) -> bool:
        command = build_rsync_command(job.source, job.target, job.is_move, self.rsync_settings)

        self._run_counter += 1
        run_id = self._run_counter

        job.command = tuple(command)
        job.status = JobStatus.RUNNING
        # A relaunch after a dead paused process keeps the original start time
        job.started_at = job.started_at or datetime.now()
        job.ended_at = None
        job.error = None

        parser = ProgressParser(job.progress_data, on_progress=partial(self._on_progress, job))
        process = self._process_factory(
            command,
            partial(self._handle_output, job.id, run_id),
            partial(self._handle_error, job.id, run_id),
            partial(self._handle_exit, job.id, run_id),
        )
        self._runtimes[job.id] = _JobRuntime(run_id=run_id, process=process, parser=parser)
        self._active.add(job.id)

        self._log(job, f"Starting {job.operation} operation...")
        self._log(job, f"Source: {job.source}")
        self._log(job, f"Target: {job.target}")
        self._notify_changed(job)

        try:
            process.start()
        except (OSError, ValueError) as e:
            logger.error(f"Could not start rsync for job '{job.name}': {e}")
            self._finish(job, returncode=None, error=f"Failed to start rsync: {e}")
            return False

        return True

    def _current_runtime(self, job_id: str, run_id: int) -> Optional[_JobRuntime]:
        runtime = self._runtimes.get(job_id)
        if runtime is None or runtime.run_id != run_id:
            return None
        return runtime

    def _handle_output(self, job_id: str, run_id: int, chunk: str):
        with self._lock:
            runtime = self._current_runtime(job_id, run_id)
            if runtime is None:
                return

            self._logs[job_id].extend(line for line in chunk.splitlines() if line.strip())
            runtime.parser.feed(chunk)
            self.events.emit(EventType.PROGRESS_OUTPUT, job_id, chunk)

    def _handle_error(self, job_id: str, run_id: int, text: str):
        with self._lock:
            runtime = self._current_runtime(job_id, run_id)
            if runtime is None or not text.strip():
                return

            job = self._jobs[job_id]
            runtime.stderr_tail.append(text.strip())
            job.error = "\n".join(runtime.stderr_tail)

            classified = self.error_analyzer.analyze(text)
            self._log(job, f"Error: {text.strip()}")
            self.events.emit(EventType.JOB_ERROR, job_id, text, classified.to_dict())
            self._notify_changed(job)

    def _handle_exit(self, job_id: str, run_id: int, returncode: int):
        with self._lock:
            if self._current_runtime(job_id, run_id) is None:
                logger.debug(f"Ignoring exit of superseded rsync run {run_id}")
                return

            self._finish(self._jobs[job_id], returncode=returncode)

    def _finish(self, job: Job, returncode: Optional[int], error: Optional[str] = None):
        """Terminal bookkeeping shared by process exit and spawn failure"""
        self._runtimes.pop(job.id, None)
        self._active.discard(job.id)

        job.ended_at = datetime.now()
        if returncode == 0:
            job.status = JobStatus.COMPLETED
            self._log(job, "Sync completed successfully!")
        else:
            job.status = JobStatus.FAILED
            if error:
                job.error = error
            elif not job.error:
                job.error = f"rsync exited with code {returncode}"
            self._log(job, f"Sync finished with code: {returncode}")

        if self.history is not None:
            self.history.record_transfer(job)

        self._notify_changed(job)
        self._promote_next_queued()

    def _release(self, job_id: str, force: bool):
        """Drop the job's runtime and stop its process"""
        runtime = self._runtimes.pop(job_id, None)
        self._active.discard(job_id)
        if runtime is None:
            return

        if force:
            runtime.process.kill()
        else:
            runtime.process.terminate(KILL_GRACE_SECONDS)

    def _promote_next_queued(self) -> bool:
        """Start the oldest queued job if a slot is free"""
        if len(self._active) >= self.max_concurrent_jobs:
            return False

        queued = [job for job in self._jobs.values() if job.status == JobStatus.QUEUED]
        if not queued:
            return False

        next_job = min(queued, key=lambda job: job.created_at)
        logger.info(f"Promoting queued job '{next_job.name}'")
        self.start_job(next_job.id)
        return True

    def _on_progress(self, job: Job):
        job.progress = job.progress_data.percentage
        self._notify_changed(job)

    def _notify_changed(self, job: Job):
        self.events.emit(EventType.JOB_CHANGED, job.to_dict())

    def _log(self, job: Job, message: str):
        logger.info(f"[{job.name}] {message}")
        log = self._logs.get(job.id)
        if log is not None:
            log.append(f"[{datetime.now().strftime('%H:%M:%S')}] {message}")
