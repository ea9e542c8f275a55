"""
SyncFlow - Concurrent rsync job orchestration.

Runs several rsync transfers side by side under a concurrency cap, turns
their progress output into structured progress data and keeps a history
of finished transfers for naming, prediction and recommendations.
"""

__version__ = "0.1.0"
__author__ = "SyncFlow Team"
__email__ = "team@syncflow.dev"

# Scheduling defaults
DEFAULT_MAX_CONCURRENT_JOBS = 3
KILL_GRACE_SECONDS = 2.0
SPEED_HISTORY_CAPACITY = 60
HISTORY_LIMIT = 100
