from __future__ import annotations

import asyncio
from typing import List

import numpy as np
from PIL import Image

from domain.errors import OcrError
from domain.models import BoundingBox, TextRegion
from engine.log import get_logger

logger = get_logger("ocr")

_EASYOCR_LANGS = {
    "ja": ["ja", "en"],
    "ko": ["ko", "en"],
    "zh": ["ch_sim", "en"],
    "en": ["en"],
}


def detect_device() -> tuple[str, str]:
    """Returns (device_id, display_name)."""
    try:
        import torch
    except ImportError:
        logger.warning("torch is not installed (pip install .[ocr]); using CPU")
        return 'cpu', 'CPU'
    if torch.cuda.is_available():
        name = torch.cuda.get_device_name(0)
        return 'cuda', f'NVIDIA GPU ({name})'
    if hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
        return 'mps', 'Apple Silicon (MPS)'
    return 'cpu', 'CPU'


def _quad_to_bbox(points) -> BoundingBox:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    left, top = np.floor(pts.min(axis=0)).astype(int)
    right, bottom = np.ceil(pts.max(axis=0)).astype(int)
    return BoundingBox(int(left), int(top), int(right), int(bottom))


class EasyOcrEngine:

    def __init__(
        self,
        source_language: str = "ja",
        device: str = "cpu",
        min_confidence: float = 0.0,
    ):
        self._languages = _EASYOCR_LANGS.get(source_language, [source_language, "en"])
        self._source_language = None if source_language == "auto" else source_language
        self._device = device
        self._min_confidence = min_confidence
        self._reader = None

    async def prepare(self) -> None:
        if self._reader is not None:
            return
        import easyocr

        gpu = self._device in ("cuda", "mps")
        logger.info(f"Loading EasyOCR reader {self._languages} (gpu={gpu})")
        self._reader = await asyncio.to_thread(easyocr.Reader, self._languages, gpu=gpu)

    def _readtext(self, img_rgb: np.ndarray) -> List[TextRegion]:
        regions: List[TextRegion] = []
        for points, text, conf in self._reader.readtext(img_rgb, detail=1, paragraph=False):
            if not text or not text.strip():
                continue
            if conf < self._min_confidence:
                continue
            regions.append(TextRegion(
                text=text.strip(),
                bbox=_quad_to_bbox(points),
                language=self._source_language,
                confidence=float(conf),
            ))
        return regions

    async def detect(self, image: Image.Image) -> List[TextRegion]:
        if self._reader is None:
            raise RuntimeError(f"{self.__class__.__name__}: Model not loaded.")
        img_rgb = np.array(image.convert("RGB"))
        try:
            return await asyncio.to_thread(self._readtext, img_rgb)
        except Exception as exc:
            raise OcrError(f"EasyOCR failed: {exc}") from exc