"""
Folder analysis for SyncFlow heuristics.

This module inspects a directory (file count, sampled extensions, approximate
size) and classifies its content. The results feed smart job naming and
transfer recommendations, so every failure degrades to an empty analysis
instead of raising.
"""

import os
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class HeuristicResult(Generic[T]):
    """Value produced by a best-effort heuristic.

    ``fallback_used`` is set when the heuristic could not do its real work and
    returned its documented fallback value instead.
    """
    value: T
    fallback_used: bool = False
    error: Optional[str] = None


class ContentType(Enum):
    """Folder content classifications."""
    PHOTOS = "photos"
    VIDEOS = "videos"
    DOCUMENTS = "documents"
    MUSIC = "music"
    BACKUP = "backup"
    FILES = "files"

    @property
    def label(self) -> str:
        return self.value.title()


@dataclass
class FolderAnalysis:
    """Result of inspecting a directory."""
    path: str
    name: str
    file_count: int = 0
    extensions: List[str] = field(default_factory=list)
    approximate_size: int = 0
    content_type: ContentType = ContentType.FILES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "file_count": self.file_count,
            "extensions": list(self.extensions),
            "approximate_size": self.approximate_size,
            "content_type": self.content_type.value,
        }


class FolderAnalyzer:
    """Heuristic directory inspection."""

    # Only the first files found are sampled for type and size inference
    SAMPLE_SIZE = 50

    # Folder-name keywords, checked before extensions (case-insensitive)
    NAME_KEYWORDS = [
        (ContentType.PHOTOS, ("dcim", "camera", "photos", "photo", "pictures", "images")),
        (ContentType.VIDEOS, ("videos", "video", "movies", "footage")),
        (ContentType.DOCUMENTS, ("documents", "docs")),
        (ContentType.MUSIC, ("music", "audio", "songs")),
        (ContentType.BACKUP, ("backup", "archive")),
    ]

    EXTENSION_TYPES = {
        ContentType.PHOTOS: {
            ".jpg", ".jpeg", ".png", ".gif", ".heic", ".heif", ".raw", ".cr2",
            ".cr3", ".nef", ".arw", ".dng", ".tif", ".tiff", ".bmp", ".webp"
        },
        ContentType.VIDEOS: {
            ".mp4", ".mov", ".avi", ".mkv", ".m4v", ".mts", ".m2ts", ".wmv",
            ".webm", ".3gp"
        },
        ContentType.DOCUMENTS: {
            ".pdf", ".doc", ".docx", ".txt", ".rtf", ".odt", ".xls", ".xlsx",
            ".ppt", ".pptx", ".pages", ".numbers", ".key", ".md", ".csv"
        },
        ContentType.MUSIC: {
            ".mp3", ".wav", ".flac", ".aac", ".m4a", ".ogg", ".aiff", ".wma"
        },
    }

    def analyze(self, path: str) -> HeuristicResult[FolderAnalysis]:
        """Analyze a directory.

        Args:
            path: Directory to inspect

        Returns:
            HeuristicResult wrapping the FolderAnalysis; a zero-count analysis
            with ``fallback_used`` set when the directory cannot be read
        """
        folder = Path(path).expanduser()
        name = folder.name or str(folder)
        empty = FolderAnalysis(path=str(folder), name=name)

        if not folder.is_dir():
            logger.debug(f"Cannot analyze {folder}: not a directory")
            return HeuristicResult(empty, fallback_used=True, error="not a directory")

        try:
            file_count, sample = self._scan(folder)
        except OSError as e:
            logger.warning(f"Folder analysis failed for {folder}: {e}")
            return HeuristicResult(empty, fallback_used=True, error=str(e))

        extensions = [p.suffix.lower() for p in sample if p.suffix]
        analysis = FolderAnalysis(
            path=str(folder),
            name=name,
            file_count=file_count,
            extensions=extensions,
            approximate_size=self._estimate_size(sample, file_count),
        )
        analysis.content_type = self.classify(name, extensions)

        logger.debug(
            f"Analyzed {folder}: {file_count} files, type {analysis.content_type.value}"
        )
        return HeuristicResult(analysis)

    def _scan(self, folder: Path):
        """Count files recursively and keep the first SAMPLE_SIZE paths"""
        file_count = 0
        sample: List[Path] = []

        def raise_error(error: OSError):
            # Only the top-level directory is fatal; unreadable subfolders are skipped
            if Path(error.filename) == folder:
                raise error
            logger.debug(f"Skipping unreadable directory: {error.filename}")

        for root, dirs, files in os.walk(folder, onerror=raise_error):
            dirs.sort()
            for file_name in sorted(files):
                if file_name.startswith('.'):
                    continue
                file_count += 1
                if len(sample) < self.SAMPLE_SIZE:
                    sample.append(Path(root) / file_name)

        return file_count, sample

    def _estimate_size(self, sample: List[Path], file_count: int) -> int:
        sizes = []
        for path in sample:
            try:
                sizes.append(path.stat().st_size)
            except OSError:
                continue

        if not sizes:
            return 0
        return int(sum(sizes) / len(sizes) * file_count)

    def classify(self, folder_name: str, extensions: List[str]) -> ContentType:
        """Classify folder content from its name, then its dominant extension"""
        lowered = folder_name.lower()
        for content_type, keywords in self.NAME_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return content_type

        counts: Counter = Counter()
        for extension in extensions:
            for content_type, known in self.EXTENSION_TYPES.items():
                if extension in known:
                    counts[content_type] += 1
                    break

        if not counts:
            return ContentType.FILES

        best = max(counts.values())
        # Dict order makes photos win a tie with videos
        for content_type in self.EXTENSION_TYPES:
            if counts.get(content_type) == best:
                return content_type

        return ContentType.FILES
