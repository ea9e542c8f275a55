"""
Tests for smart job naming.
"""

import pytest
from datetime import datetime
from unittest.mock import Mock

from syncflow.analyzer import ContentType, FolderAnalysis, FolderAnalyzer
from syncflow.naming import SmartNamer, fallback_name, is_backup_destination

NOW = datetime(2024, 10, 19, 14, 5, 30)


def make_files(folder, names):
    folder.mkdir(parents=True, exist_ok=True)
    for name in names:
        (folder / name).write_text("data")


@pytest.fixture
def namer():
    return SmartNamer(FolderAnalyzer(), clock=lambda: NOW)


class TestGenerateName:
    """Test SmartNamer.generate_name."""

    def test_camera_import(self, namer, tmp_path):
        source = tmp_path / "DCIM"
        make_files(source, ["IMG_1.jpg", "IMG_2.jpg", "IMG_3.jpg"])

        result = namer.generate_name(str(source), str(tmp_path / "Pictures"))

        assert not result.fallback_used
        assert result.value == "Camera Import (3 items) - Oct 19 14:05"

    def test_backup_destination(self, namer, tmp_path):
        source = tmp_path / "Documents"
        make_files(source, ["a.pdf"])
        target = tmp_path / "Backup Drive"
        target.mkdir()

        result = namer.generate_name(str(source), str(target))

        assert result.value == "Documents to Backup Drive - Oct 19 14:05"

    def test_backup_destination_that_does_not_exist_yet(self, namer, tmp_path):
        source = tmp_path / "Music"
        make_files(source, ["a.mp3"])

        result = namer.generate_name(str(source), str(tmp_path / "archive"))

        assert result.value == "Music to archive - Oct 19 14:05"

    def test_generic_name(self, namer, tmp_path):
        source = tmp_path / "projects"
        make_files(source, ["a.pdf", "b.pdf"])

        result = namer.generate_name(str(source), str(tmp_path / "dest"))

        assert result.value == "Documents: projects (2 files) - Oct 19 14:05"

    def test_missing_source_uses_fallback(self, namer, tmp_path):
        source = tmp_path / "gone"

        result = namer.generate_name(str(source), str(tmp_path / "dest"), is_move=True)

        assert result.fallback_used
        assert result.value == "Move gone - 2024-10-19 14:05:30"

    def test_analyzer_exception_uses_fallback(self, tmp_path):
        analyzer = Mock()
        analyzer.analyze.side_effect = RuntimeError("boom")
        namer = SmartNamer(analyzer, clock=lambda: NOW)

        result = namer.generate_name("/data/photos/", "/backup")

        assert result.fallback_used
        assert result.error == "boom"
        assert result.value == "Copy photos - 2024-10-19 14:05:30"


class TestDescribe:

    def test_photos_without_dcim_are_not_camera_import(self, namer):
        source = FolderAnalysis(path="/x/Holiday", name="Holiday", file_count=4,
                                content_type=ContentType.PHOTOS)
        target = FolderAnalysis(path="/y/dest", name="dest")

        assert namer.describe(source, target) == "Photos: Holiday (4 files)"


class TestHelpers:

    def test_fallback_name_copy(self):
        assert fallback_name("/data/stuff", False, NOW) == "Copy stuff - 2024-10-19 14:05:30"

    def test_fallback_name_trailing_slash(self):
        assert fallback_name("/data/stuff/", True, NOW) == "Move stuff - 2024-10-19 14:05:30"

    @pytest.mark.parametrize("name,expected", [
        ("Backup", True),
        ("photo-archive", True),
        ("Time Machine", True),
        ("Pictures", False),
    ])
    def test_is_backup_destination(self, name, expected):
        assert is_backup_destination(name) is expected
