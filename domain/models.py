"""
Data models for the batch translation pipeline.
Decoupled from the OCR, translation and imaging libraries.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import ErrorKind

_JAPANESE_RE = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FFF]")


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in pixel coordinates (right/bottom exclusive)."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def area(self) -> int:
        if self.is_empty:
            return 0
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.right <= self.left or self.bottom <= self.top

    @property
    def center(self) -> Tuple[int, int]:
        return self.left + self.width // 2, self.top + self.height // 2

    def contains(self, other: BoundingBox) -> bool:
        return (
            self.left <= other.left
            and self.top <= other.top
            and self.right >= other.right
            and self.bottom >= other.bottom
        )


@dataclass(frozen=True)
class TextRegion:
    """A single raw detection produced by the OCR engine."""

    text: str
    bbox: BoundingBox
    language: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class TextBlock:
    """Merged, translation-ready unit built from one or more regions."""

    text: str
    bbox: BoundingBox
    sources: Tuple[TextRegion, ...] = ()
    translated_text: Optional[str] = None
    language: Optional[str] = None
    confidence: Optional[float] = None

    @classmethod
    def from_region(cls, region: TextRegion) -> TextBlock:
        return cls(
            text=region.text,
            bbox=region.bbox,
            sources=(region,),
            language=region.language,
            confidence=region.confidence,
        )

    def estimate_font_size(self) -> float:
        if self.sources:
            return float(self.sources[0].bbox.height)
        return float(self.bbox.height)

    def estimate_translated_font_size(self, target_language: str = "en") -> float:
        original = self.estimate_font_size()
        if not self.translated_text:
            return original
        ratio = len(self.text) / len(self.translated_text)
        if target_language == "en":
            return original * min(max(0.8 * ratio, 0.5), 1.2)
        if target_language in ("ko", "zh"):
            return original
        return original * min(max(ratio, 0.6), 1.1)

    def is_japanese_text(self) -> bool:
        return bool(_JAPANESE_RE.search(self.text))


@dataclass(frozen=True)
class ImageFile:
    """A discovered page image. ``index`` is the position inside its chapter."""

    path: str
    chapter: str
    index: int
    relative_path: str = ""

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


@dataclass
class PageTranslation:
    """Output of the per-image step, before anything is written."""

    blocks: List[TextBlock] = field(default_factory=list)
    image_bytes: Optional[bytes] = None
    region_count: int = 0


@dataclass(frozen=True)
class ImageTask:
    """One unit of work on the pipeline queue."""

    image: ImageFile
    sequence: int
    chapter: str


@dataclass
class ProcessingResult:
    """Outcome of exactly one attempt at one image."""

    task: ImageTask
    success: bool
    output_bytes: Optional[bytes] = None
    output_path: Optional[str] = None
    blocks: List[TextBlock] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def cancelled(self) -> bool:
        return self.error_kind is ErrorKind.CANCELLED

    @property
    def image(self) -> ImageFile:
        return self.task.image

    @classmethod
    def failure(cls, task: ImageTask, error: str) -> ProcessingResult:
        return cls(task=task, success=False, error=error, error_kind=ErrorKind.IMAGE)

    @classmethod
    def discarded(cls, task: ImageTask, blocks: List[TextBlock]) -> ProcessingResult:
        """In-flight result thrown away because the batch was cancelled."""
        return cls(
            task=task,
            success=False,
            blocks=blocks,
            error="Cancelled before output was written",
            error_kind=ErrorKind.CANCELLED,
        )
