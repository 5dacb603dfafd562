"""Discover chapter/series folder structures and the page images inside them."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from domain.models import ImageFile
from engine.config import OUTPUT_SUFFIX, SUPPORTED_EXTENSIONS
from engine.log import get_logger

logger = get_logger("scanner")

_CHAPTER_PREFIX_RE = re.compile(r"ch[0-9]+.*", re.IGNORECASE)


class FolderKind(str, Enum):
    SINGLE_CHAPTER = "single_chapter"
    SERIES = "series"
    INVALID = "invalid"


@dataclass(frozen=True)
class PathValidation:
    ok: bool
    output_path: Optional[str] = None
    reason: Optional[str] = None


def _natural_sort_key(name: str) -> Tuple[int, int]:
    digits = "".join(c for c in name if c.isdigit())
    if not digits:
        return (1, 0)
    return (0, int(digits))


def natural_sorted(names: List[str]) -> List[str]:
    """Order by the number formed from all digits in the name; digitless last.

    Names are first ordered case-insensitively so that ties on the extracted
    number resolve the same way on every filesystem.
    """
    ordered = sorted(names, key=lambda n: (n.lower(), n))
    return sorted(ordered, key=_natural_sort_key)


def is_image_file(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in SUPPORTED_EXTENSIONS


def is_chapter_name(name: str) -> bool:
    return "chapter" in name.lower() or bool(_CHAPTER_PREFIX_RE.fullmatch(name))


def _list_dir(path: str) -> List[os.DirEntry]:
    try:
        with os.scandir(path) as it:
            return list(it)
    except OSError:
        return []


def contains_images(path: str) -> bool:
    return any(e.is_file() and is_image_file(e.name) for e in _list_dir(path))


class PathScanner:
    """Classifies an input root and lists its images in reading order."""

    def classify(self, root_path: str) -> FolderKind:
        if not os.path.isdir(root_path):
            return FolderKind.INVALID
        if contains_images(root_path):
            return FolderKind.SINGLE_CHAPTER
        if any(e.is_dir() and is_chapter_name(e.name) for e in _list_dir(root_path)):
            return FolderKind.SERIES
        return FolderKind.INVALID

    def output_path(self, input_path: str, kind: Optional[FolderKind] = None) -> Optional[str]:
        input_path = os.path.abspath(input_path)
        kind = kind or self.classify(input_path)
        if kind is FolderKind.SINGLE_CHAPTER:
            return input_path + OUTPUT_SUFFIX
        if kind is FolderKind.SERIES:
            parent, name = os.path.split(input_path)
            return os.path.join(parent, name + OUTPUT_SUFFIX)
        return None

    def validate(self, input_path: str) -> PathValidation:
        """Check an input root before any processing starts."""
        input_path = os.path.abspath(input_path)
        if not os.path.exists(input_path):
            return PathValidation(False, reason="Input directory does not exist")
        if not os.path.isdir(input_path):
            return PathValidation(False, reason="Input path is not a directory")

        kind = self.classify(input_path)
        if kind is FolderKind.INVALID:
            return PathValidation(False, reason="Invalid folder structure")

        output_path = self.output_path(input_path, kind)
        if os.path.exists(output_path):
            if not os.path.isdir(output_path):
                return PathValidation(False, reason="Output path exists and is not a directory")
            if os.listdir(output_path):
                return PathValidation(
                    False, reason="Output directory already exists and is not empty"
                )
        return PathValidation(True, output_path=output_path)

    def chapter_dirs(self, root_path: str) -> List[str]:
        """Direct sub-directories of a series that hold page images."""
        names = [
            e.name for e in _list_dir(root_path)
            if e.is_dir() and contains_images(e.path)
        ]
        return [os.path.join(root_path, n) for n in natural_sorted(names)]

    def _scan_chapter(self, chapter_dir: str, relative_prefix: str) -> List[ImageFile]:
        chapter = os.path.basename(chapter_dir)
        names = [
            e.name for e in _list_dir(chapter_dir)
            if e.is_file() and is_image_file(e.name)
        ]
        return [
            ImageFile(
                path=os.path.join(chapter_dir, name),
                chapter=chapter,
                index=i,
                relative_path=os.path.join(relative_prefix, name) if relative_prefix else name,
            )
            for i, name in enumerate(natural_sorted(names))
        ]

    def scan(self, root_path: str) -> List[ImageFile]:
        root_path = os.path.abspath(root_path)
        kind = self.classify(root_path)
        if kind is FolderKind.SINGLE_CHAPTER:
            images = self._scan_chapter(root_path, "")
        elif kind is FolderKind.SERIES:
            images = []
            for chapter_dir in self.chapter_dirs(root_path):
                images.extend(self._scan_chapter(chapter_dir, os.path.basename(chapter_dir)))
        else:
            logger.warning(f"Nothing to scan, invalid folder structure: {root_path}")
            return []
        logger.debug(f"Scanned {len(images)} image(s) under {root_path}")
        return images

    def group_by_chapter(self, images: List[ImageFile]) -> Dict[str, List[ImageFile]]:
        grouped: Dict[str, List[ImageFile]] = {}
        for image in images:
            grouped.setdefault(image.chapter, []).append(image)
        return grouped

    def create_output_directories(self, input_path: str, output_path: str) -> None:
        """Create the output root, plus one directory per chapter for a series.

        Raises ``OSError`` when the target is not writable.
        """
        os.makedirs(output_path, exist_ok=True)
        if self.classify(input_path) is FolderKind.SERIES:
            for chapter_dir in self.chapter_dirs(input_path):
                os.makedirs(os.path.join(output_path, os.path.basename(chapter_dir)), exist_ok=True)
