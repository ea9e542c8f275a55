"""
SyncFlow - Sync Engine
rsync process integration: command building, output streaming, suspend/resume and termination.
"""

import shutil
import logging
import subprocess
import threading
from typing import Callable, List, Optional, Sequence

import psutil

from . import KILL_GRACE_SECONDS
from .config import RsyncSettings

logger = logging.getLogger(__name__)


def normalize_source(source: str) -> str:
    """Add a trailing separator so rsync copies the folder contents"""
    stripped = source.rstrip("/\\")
    if not stripped:
        # filesystem root
        return source
    return stripped + "/"


def build_rsync_command(source: str, target: str, is_move: bool,
                        settings: Optional[RsyncSettings] = None) -> List[str]:
    """Build the rsync command line for a job"""
    settings = settings or RsyncSettings()

    cmd = [settings.binary]
    cmd.extend(settings.flags)

    if is_move:
        cmd.append(settings.move_flag)

    cmd.append(normalize_source(source))
    cmd.append(target)

    return cmd


def find_rsync(binary: str = "rsync") -> Optional[str]:
    """Full path of the rsync binary, or None when it is not installed"""
    return shutil.which(binary)


class RsyncProcess:
    """One running rsync with its output streamed to callbacks.

    stdout and stderr are read line by line on daemon threads; a watcher
    thread joins both readers before calling ``on_exit`` so every output
    line is delivered before the exit code.
    """

    def __init__(self, command: Sequence[str],
                 on_output: Callable[[str], None],
                 on_error: Callable[[str], None],
                 on_exit: Callable[[int], None]):
        self.command = list(command)
        self._on_output = on_output
        self._on_error = on_error
        self._on_exit = on_exit

        self._process: Optional[subprocess.Popen] = None
        self._kill_timer: Optional[threading.Timer] = None
        self._suspended = False

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self):
        """Spawn rsync. Raises OSError when the binary cannot be executed."""
        self._process = subprocess.Popen(
            self.command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            bufsize=1,
        )
        logger.debug(f"Started rsync pid {self._process.pid}: {' '.join(self.command)}")

        readers = [
            self._start_reader(self._process.stdout, self._on_output, "stdout"),
            self._start_reader(self._process.stderr, self._on_error, "stderr"),
        ]
        watcher = threading.Thread(
            target=self._watch, args=(readers,), name=f"rsync-{self._process.pid}-watch", daemon=True
        )
        watcher.start()

    def _start_reader(self, stream, callback: Callable[[str], None], name: str) -> threading.Thread:
        def reader():
            try:
                # Universal newlines turn rsync's \r progress updates into separate lines
                for line in iter(stream.readline, ''):
                    try:
                        callback(line)
                    except Exception as e:
                        logger.error(f"Error handling rsync {name}: {e}")
            except (OSError, ValueError) as e:
                logger.debug(f"rsync {name} closed: {e}")
            finally:
                stream.close()

        thread = threading.Thread(target=reader, name=f"rsync-{self._process.pid}-{name}", daemon=True)
        thread.start()
        return thread

    def _watch(self, readers: List[threading.Thread]):
        for thread in readers:
            thread.join()
        returncode = self._process.wait()
        self._cancel_kill_timer()
        logger.debug(f"rsync pid {self._process.pid} exited with code {returncode}")
        self._on_exit(returncode)

    def _process_tree(self) -> List[psutil.Process]:
        parent = psutil.Process(self._process.pid)
        return [parent] + parent.children(recursive=True)

    def suspend(self) -> bool:
        """Stop rsync and its helper processes in place"""
        if not self.is_running:
            return False
        try:
            for proc in self._process_tree():
                proc.suspend()
            self._suspended = True
            return True
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.warning(f"Could not suspend rsync pid {self.pid}: {e}")
            return False

    def resume(self) -> bool:
        """Continue a suspended rsync"""
        if not self.is_running:
            return False
        try:
            for proc in self._process_tree():
                proc.resume()
            self._suspended = False
            return True
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.warning(f"Could not resume rsync pid {self.pid}: {e}")
            return False

    def terminate(self, grace_period: float = KILL_GRACE_SECONDS):
        """Ask rsync to exit; kill it if it is still alive after the grace period.

        Returns immediately, the kill happens on a timer thread.
        """
        if not self.is_running:
            return

        if self._suspended:
            # A stopped process never handles SIGTERM
            self.resume()

        try:
            self._process.terminate()
        except OSError as e:
            logger.debug(f"Terminate failed for rsync pid {self.pid}: {e}")

        self._cancel_kill_timer()
        self._kill_timer = threading.Timer(grace_period, self._escalate)
        self._kill_timer.daemon = True
        self._kill_timer.start()

    def _escalate(self):
        if self.is_running:
            logger.warning(f"rsync pid {self.pid} ignored terminate, killing it")
            self.kill()

    def kill(self):
        """Kill rsync and its helper processes immediately"""
        self._cancel_kill_timer()
        if not self.is_running:
            return
        try:
            children = psutil.Process(self._process.pid).children(recursive=True)
        except psutil.Error:
            children = []
        for child in children:
            try:
                child.kill()
            except psutil.Error:
                continue
        try:
            self._process.kill()
        except OSError as e:
            logger.debug(f"Kill failed for rsync pid {self.pid}: {e}")

    def _cancel_kill_timer(self):
        if self._kill_timer is not None:
            self._kill_timer.cancel()
            self._kill_timer = None


ProcessFactory = Callable[
    [Sequence[str], Callable[[str], None], Callable[[str], None], Callable[[int], None]],
    RsyncProcess,
]
