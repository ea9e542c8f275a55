"""
Tests for the command-line interface.
"""

import logging
import pytest
from click.testing import CliRunner
from unittest.mock import patch

from syncflow import __version__
from syncflow.cli import main
from syncflow.context import create_context

from conftest import FakeProcess, FakeProcessFactory

PROGRESS_LINE = "  2506567 100%   42.84MB/s    0:00:00 (xfer#161, to-check=0/724)\n"


class InstantProcess(FakeProcess):
    """Finishes as soon as it is started."""

    exit_code = 0
    stderr = None

    def start(self):
        super().start()
        self.emit_stdout(PROGRESS_LINE)
        if self.stderr:
            self.emit_stderr(self.stderr)
        self.finish(self.exit_code)


class InstantFactory(FakeProcessFactory):

    def __init__(self, exit_code=0, stderr=None):
        super().__init__()
        self.exit_code = exit_code
        self.stderr = stderr

    def __call__(self, command, on_output, on_error, on_exit):
        process = InstantProcess(command, on_output, on_error, on_exit)
        process.exit_code = self.exit_code
        process.stderr = self.stderr
        self.processes.append(process)
        return process


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    return str(tmp_path / "config")


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    root = logging.getLogger("syncflow")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def invoke(runner, config_dir, *args):
    return runner.invoke(main, ["--plain", "--config-dir", config_dir, *args])


def run_with_fake_rsync(runner, config_dir, factory, *args):
    def fake_create_context(directory):
        return create_context(directory, process_factory=factory)

    with patch("syncflow.cli.create_context", side_effect=fake_create_context), \
            patch("syncflow.cli.find_rsync", return_value="/usr/bin/rsync"):
        return invoke(runner, config_dir, "run", *args)


class TestBasics:

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "run" in result.output
        assert "history" in result.output


class TestRun:
    """Test the run command with a fake rsync."""

    def test_requires_a_job(self, runner, config_dir):
        result = invoke(runner, config_dir, "run")

        assert result.exit_code == 2
        assert "--job" in result.output

    def test_missing_rsync(self, runner, config_dir):
        with patch("syncflow.cli.find_rsync", return_value=None):
            result = invoke(runner, config_dir, "run", "-j", "/a", "/b")

        assert result.exit_code == 1
        assert "rsync not found" in result.output

    def test_successful_transfers(self, runner, config_dir):
        factory = InstantFactory()

        result = run_with_fake_rsync(runner, config_dir, factory,
                                     "-j", "/data/a", "/backup/a", "-j", "/data/b", "/backup/b",
                                     "--name", "Nightly")

        assert result.exit_code == 0, result.output
        assert "All transfers finished" in result.output
        assert len(factory.processes) == 2

        context = create_context(config_dir)
        names = [r.name for r in context.get_recent_history()]
        assert names == ["Nightly #2", "Nightly #1"]
        assert context.get_last_used() == {"source": "/data/b", "target": "/backup/b", "isMove": False}

    def test_move_flag(self, runner, config_dir):
        factory = InstantFactory()

        run_with_fake_rsync(runner, config_dir, factory, "--move", "-j", "/data/a", "/backup/a", "--name", "Move it")

        assert "--remove-source-files" in factory.processes[0].command

    def test_failed_transfer_is_explained(self, runner, config_dir):
        factory = InstantFactory(exit_code=23, stderr='rsync: opendir "/data/a" failed: Permission denied (13)\n')

        result = run_with_fake_rsync(runner, config_dir, factory, "-j", "/data/a", "/backup/a", "--name", "Broken")

        assert result.exit_code == 1
        assert "Broken failed" in result.output
        assert "Grant the terminal Full Disk Access" in result.output


class TestQueries:
    """Test the read-only commands."""

    def test_classify(self, runner, config_dir):
        result = invoke(runner, config_dir, "classify", "rsync: write failed: No space left on device (28)")

        assert result.exit_code == 0
        assert "Destination Full" in result.output
        assert "Free up space" in result.output

    def test_history_empty(self, runner, config_dir):
        result = invoke(runner, config_dir, "history")

        assert result.exit_code == 0
        assert "No transfers recorded yet" in result.output

    def test_history_after_run(self, runner, config_dir):
        run_with_fake_rsync(runner, config_dir, InstantFactory(), "-j", "/data/a", "/backup/a", "--name", "First")

        result = invoke(runner, config_dir, "history")

        assert result.exit_code == 0
        assert "First" in result.output
        assert "1 transfers" in result.output

    def test_predict_without_history(self, runner, config_dir):
        result = invoke(runner, config_dir, "predict", "100")

        assert result.exit_code == 0
        assert "Not enough history" in result.output

    def test_predict_rejects_negative(self, runner, config_dir):
        result = invoke(runner, config_dir, "predict", "-5")
        assert result.exit_code != 0

    def test_analyze(self, runner, config_dir, tmp_path):
        folder = tmp_path / "DCIM"
        folder.mkdir()
        (folder / "IMG_1.jpg").write_bytes(b"0" * 100)

        result = invoke(runner, config_dir, "analyze", str(folder))

        assert result.exit_code == 0
        assert "photos" in result.output
        assert "Camera Import (1 items)" in result.output

    def test_analyze_missing_folder(self, runner, config_dir, tmp_path):
        result = invoke(runner, config_dir, "analyze", str(tmp_path / "missing"))

        assert "Cannot read" in result.output

    def test_recommend(self, runner, config_dir, tmp_path):
        folder = tmp_path / "Videos"
        folder.mkdir()
        (folder / "clip.mp4").write_bytes(b"0" * 100)

        result = invoke(runner, config_dir, "recommend", str(folder), str(tmp_path / "Backup"))

        assert result.exit_code == 0
        assert "Video Files" in result.output
        assert "Backup Destination" in result.output

    def test_last_without_jobs(self, runner, config_dir):
        result = invoke(runner, config_dir, "last")

        assert "No job has been submitted yet" in result.output

    def test_last_after_submit(self, runner, config_dir):
        create_context(config_dir).last_used.save("/src", "/dst", True)

        result = invoke(runner, config_dir, "last")

        assert "Last move: /src → /dst" in result.output


class TestConfigCommand:

    def test_show(self, runner, config_dir):
        result = invoke(runner, config_dir, "config")

        assert result.exit_code == 0
        assert "jobs.max_concurrent_jobs: 3" in result.output

    def test_set(self, runner, config_dir):
        result = invoke(runner, config_dir, "config", "--set", "jobs.max_concurrent_jobs", "5")

        assert result.exit_code == 0
        assert create_context(config_dir).settings.jobs.max_concurrent_jobs == 5

    def test_set_invalid(self, runner, config_dir):
        result = invoke(runner, config_dir, "config", "--set", "jobs.max_concurrent_jobs", "0")

        assert result.exit_code == 1

    def test_validate(self, runner, config_dir):
        result = invoke(runner, config_dir, "config", "--validate")

        assert result.exit_code == 0
        assert "Settings are valid" in result.output
