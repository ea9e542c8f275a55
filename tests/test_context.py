"""
Tests for the application context.
"""

import os
import pytest

from syncflow.config import JobSettings, SyncflowSettings, PathSettings
from syncflow.context import SyncflowContext, create_context
from syncflow.errors import ErrorCategory
from syncflow.jobs import JobStatus


@pytest.fixture
def context(settings, process_factory):
    return SyncflowContext(settings, process_factory=process_factory)


class TestCreateContext:
    """Test building a context from a config directory."""

    def test_first_run_uses_config_dir_for_storage(self, tmp_path):
        context = create_context(str(tmp_path))

        assert os.path.exists(tmp_path / "settings.yaml")
        assert context.settings.paths.storage_dir == str(tmp_path)
        assert str(context.history.history_file) == str(tmp_path / "transfer-history.json")
        assert context.settings_manager is not None

    def test_existing_settings_are_loaded(self, tmp_path):
        first = create_context(str(tmp_path))
        first.settings_manager.set_setting("jobs.max_concurrent_jobs", "7")
        first.settings_manager.save_settings()

        second = create_context(str(tmp_path))

        assert second.manager.max_concurrent_jobs == 7
        assert second.settings.paths.storage_dir == str(tmp_path)


class TestSubmit:
    """Test job submission through the context."""

    def test_submit_starts_and_remembers(self, context, process_factory):
        job_id = context.submit("/data/photos", "/backup", is_move=True, name="Photos")

        assert context.get_job(job_id).status == JobStatus.RUNNING
        assert len(process_factory.processes) == 1
        assert context.get_last_used() == {"source": "/data/photos", "target": "/backup", "isMove": True}

    def test_submit_without_start(self, context, process_factory):
        job_id = context.submit("/data/photos", "/backup", start=False)

        assert context.get_job(job_id).status == JobStatus.PENDING
        assert process_factory.processes == []

    def test_submit_queues_past_cap(self, context):
        ids = [context.submit(f"/data/{i}", f"/backup/{i}", name=f"Job {i}") for i in range(4)]

        assert [context.get_job(job_id).status for job_id in ids] == [
            JobStatus.RUNNING, JobStatus.RUNNING, JobStatus.RUNNING, JobStatus.QUEUED,
        ]
        assert len(context.list_jobs()) == 4

    def test_smart_naming_disabled(self, tmp_path, process_factory):
        settings = SyncflowSettings(
            jobs=JobSettings(smart_naming=False),
            paths=PathSettings(storage_dir=str(tmp_path)),
        )
        context = SyncflowContext(settings, process_factory=process_factory)

        assert context.manager.namer is None

    def test_close_stops_everything(self, context, process_factory):
        job_id = context.submit("/data/photos", "/backup", name="Photos")

        context.close()

        assert process_factory.processes[0].killed
        assert context.get_job(job_id).status == JobStatus.STOPPED


class TestQueries:
    """Test history and heuristic queries."""

    def test_history_round_trip(self, context, process_factory):
        job_id = context.submit("/data/photos", "/backup", name="Photos")
        process_factory.processes[0].finish(0)

        assert [r.id for r in context.get_recent_history()] == [job_id]
        assert [r.id for r in context.get_similar_history("/other/photos", "/elsewhere")] == [job_id]

    def test_predict_duration_without_history(self, context):
        assert context.predict_duration(100) is None

    def test_classify_error(self, context):
        result = context.classify_error("rsync: connection unexpectedly closed")
        assert result.category == ErrorCategory.NETWORK

    def test_recommendations_for_missing_source(self, context, tmp_path):
        result = context.get_recommendations(str(tmp_path / "missing"), "/backup")

        assert result.fallback_used
        assert result.value
        assert result.value[-1].category == "timing"

    def test_recommendations_for_real_folder(self, context, tmp_path):
        source = tmp_path / "Videos"
        source.mkdir()
        (source / "clip.mp4").write_bytes(b"0" * 10)

        result = context.get_recommendations(str(source), str(tmp_path / "Backup"))

        assert not result.fallback_used
        titles = [r.title for r in result.value]
        assert "Video Files" in titles
        assert "Backup Destination" in titles
