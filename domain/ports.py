"""
Port interfaces (driven/secondary ports) for the batch translation domain.

All adapters must conform to these Protocols.
The use-case layer depends ONLY on these abstractions.
"""
from __future__ import annotations

from typing import Protocol, List, Optional, runtime_checkable

from PIL import Image

from .job import ProgressSnapshot
from .models import TextBlock, TextRegion


@runtime_checkable
class OcrPort(Protocol):
    """Detect and recognise text regions in an image."""

    async def prepare(self) -> None: ...

    async def detect(self, image: Image.Image) -> List[TextRegion]:
        """
        Returns the raw regions in detection order.

        Raises ``OcrError`` when detection fails for this image only.
        """
        ...


@runtime_checkable
class TranslatorPort(Protocol):
    """Translate text for one fixed language pair."""

    async def prepare(self) -> None:
        """Make the underlying model or service ready (may download)."""
        ...

    async def translate(self, text: str, target_language: str) -> str: ...


@runtime_checkable
class RegionMergerPort(Protocol):
    """Consolidate raw OCR regions into text blocks."""

    def merge(self, regions: List[TextRegion]) -> List[TextBlock]: ...


@runtime_checkable
class CompositorPort(Protocol):
    """Draw translated blocks onto the page and encode the result."""

    async def compose(
        self,
        image: Image.Image,
        blocks: List[TextBlock],
        image_format: str = "PNG",
        target_language: str = "en",
    ) -> bytes: ...


@runtime_checkable
class TranslationCachePort(Protocol):
    """Keyed store of translations; must be safe for concurrent callers."""

    def get(self, text: str, source_language: str, target_language: str) -> Optional[str]: ...

    def put(
        self,
        text: str,
        translated_text: str,
        source_language: str,
        target_language: str,
    ) -> None: ...


@runtime_checkable
class ProgressReporterPort(Protocol):
    """Render progress somewhere (log, terminal bar, notification)."""

    def publish(self, snapshot: ProgressSnapshot) -> None: ...
