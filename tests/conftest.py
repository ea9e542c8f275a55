"""
Shared fixtures: a fake rsync process that tests drive by hand.
"""

import pytest

from syncflow.config import SyncflowSettings, PathSettings
from syncflow.history import TransferHistory
from syncflow.jobs import JobManager


class FakeProcess:
    """Stands in for RsyncProcess; output and exit are triggered by the test."""

    def __init__(self, command, on_output, on_error, on_exit, fail_start=False):
        self.command = list(command)
        self.on_output = on_output
        self.on_error = on_error
        self.on_exit = on_exit
        self.fail_start = fail_start

        self.started = False
        self.running = False
        self.suspended = False
        self.terminated_with = None
        self.killed = False

    @property
    def is_running(self):
        return self.running

    def start(self):
        if self.fail_start:
            raise FileNotFoundError(2, "No such file or directory", self.command[0])
        self.started = True
        self.running = True

    def suspend(self):
        if not self.running:
            return False
        self.suspended = True
        return True

    def resume(self):
        if not self.running:
            return False
        self.suspended = False
        return True

    def terminate(self, grace_period=2.0):
        self.terminated_with = grace_period

    def kill(self):
        self.killed = True
        self.running = False

    # Test drivers

    def emit_stdout(self, text):
        self.on_output(text)

    def emit_stderr(self, text):
        self.on_error(text)

    def finish(self, code=0):
        self.running = False
        self.on_exit(code)


class FakeProcessFactory:
    """Creates FakeProcess objects and remembers them in launch order."""

    def __init__(self):
        self.processes = []
        self.fail_next = False

    def __call__(self, command, on_output, on_error, on_exit):
        process = FakeProcess(command, on_output, on_error, on_exit, fail_start=self.fail_next)
        self.fail_next = False
        self.processes.append(process)
        return process

    def for_target(self, target):
        """Most recent process launched for a target path"""
        matches = [p for p in self.processes if p.command[-1] == target]
        return matches[-1] if matches else None


@pytest.fixture
def process_factory():
    return FakeProcessFactory()


@pytest.fixture
def history(tmp_path):
    return TransferHistory(str(tmp_path / "transfer-history.json"))


@pytest.fixture
def manager(history, process_factory):
    return JobManager(history=history, max_concurrent_jobs=3, process_factory=process_factory)


@pytest.fixture
def settings(tmp_path):
    return SyncflowSettings(paths=PathSettings(storage_dir=str(tmp_path / "storage")))
