"""
SyncFlow - Job Events
Publish/subscribe channel between the job manager and whatever displays jobs.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Notifications published by the job manager"""
    JOB_CHANGED = "job-changed"        # payload: job dict
    JOB_REMOVED = "job-removed"        # payload: job id
    PROGRESS_OUTPUT = "progress-output"  # payload: job id, raw chunk
    JOB_ERROR = "job-error"            # payload: job id, raw text, classified error dict


Callback = Callable[..., None]


class EventBus:
    """Synchronous event dispatcher; subscriber errors are logged, never raised"""

    def __init__(self):
        self._subscribers: Dict[EventType, List[Callback]] = {event: [] for event in EventType}
        self._lock = threading.Lock()

    def subscribe(self, event: EventType, callback: Callback) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it"""
        with self._lock:
            self._subscribers[event].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[event]:
                    self._subscribers[event].remove(callback)

        return unsubscribe

    def emit(self, event: EventType, *payload: Any):
        with self._lock:
            callbacks = list(self._subscribers[event])

        for callback in callbacks:
            try:
                callback(*payload)
            except Exception as e:
                logger.warning(f"Subscriber for {event.value} failed: {e}")
