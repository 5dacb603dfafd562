from __future__ import annotations

import asyncio
from typing import List

from domain.errors import OcrError
from domain.models import ImageFile, PageTranslation, TextRegion
from domain.ports import CompositorPort, OcrPort, RegionMergerPort
from engine.log import get_logger
from infrastructure.image_store import image_format_for, load_image

from .translate_text import TranslationService

logger = get_logger("page")


class TranslatePageUseCase:

    def __init__(
        self,
        ocr: OcrPort,
        merger: RegionMergerPort,
        translation: TranslationService,
        compositor: CompositorPort,
        target_language: str = "en",
    ):
        self._ocr = ocr
        self._merger = merger
        self._translation = translation
        self._compositor = compositor
        self._target_language = target_language

    @property
    def target_language(self) -> str:
        return self._target_language

    async def prepare(self) -> None:
        logger.info("Preparing OCR model...")
        await self._ocr.prepare()
        logger.info(f"Preparing translator for {self._target_language}...")
        await self._translation.prepare(self._target_language)
        logger.info("Models ready.")

    async def _detect(self, image_file: ImageFile, img) -> List[TextRegion]:
        try:
            return await self._ocr.detect(img)
        except OcrError as exc:
            logger.warning(f"  Text detection failed for {image_file.name}, treating as blank: {exc}")
            return []

    async def execute(self, image_file: ImageFile) -> PageTranslation:
        logger.debug(f"Processing: {image_file.path}")

        img = await asyncio.to_thread(load_image, image_file.path)
        logger.debug(f"  Image size: {img.width}x{img.height}")

        regions = await self._detect(image_file, img)
        blocks = self._merger.merge(regions)
        logger.debug(f"  {len(regions)} region(s) merged into {len(blocks)} block(s)")

        if blocks:
            await self._translation.translate_blocks(blocks, self._target_language)

        image_bytes = await self._compositor.compose(
            img,
            blocks,
            image_format=image_format_for(image_file.path),
            target_language=self._target_language,
        )
        return PageTranslation(blocks=blocks, image_bytes=image_bytes, region_count=len(regions))
