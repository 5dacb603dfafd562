from __future__ import annotations

import asyncio
import io
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from domain.models import TextBlock

_SAVE_OPTIONS = {
    "JPEG": {"quality": 95},
    "WEBP": {"quality": 95},
    "PNG": {},
}


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> List[str]:
    """Greedy wrap on spaces; text without spaces (CJK) wraps per character."""
    if " " in text:
        tokens, sep = text.split(), " "
    else:
        tokens, sep = list(text), ""

    lines: List[str] = []
    line = ""
    for token in tokens:
        candidate = f"{line}{sep}{token}" if line else token
        if not line or draw.textlength(candidate, font=font) <= max_width:
            line = candidate
        else:
            lines.append(line)
            line = token
    if line:
        lines.append(line)
    return lines


class PillowCompositor:

    def __init__(
        self,
        font_path: Optional[str] = None,
        min_font_size: int = 10,
        foreground: Tuple[int, int, int] = (0, 0, 0),
        background: Tuple[int, int, int] = (255, 255, 255),
        line_spacing: float = 1.15,
    ):
        self._font_path = font_path
        self._min_font_size = min_font_size
        self._foreground = foreground
        self._background = background
        self._line_spacing = line_spacing
        self._fonts: Dict[int, ImageFont.ImageFont] = {}

    def _font(self, size: int):
        font = self._fonts.get(size)
        if font is None:
            if self._font_path:
                font = ImageFont.truetype(self._font_path, size)
            else:
                font = ImageFont.load_default(size=size)
            self._fonts[size] = font
        return font

    def _draw_block(self, draw: ImageDraw.ImageDraw, block: TextBlock, target_language: str) -> None:
        box = block.bbox
        draw.rectangle(
            (box.left, box.top, max(box.right - 1, box.left), max(box.bottom - 1, box.top)),
            fill=self._background,
        )

        size = max(int(round(block.estimate_translated_font_size(target_language))), self._min_font_size)
        font = self._font(size)
        lines = wrap_text(draw, block.translated_text, font, max(box.width, 1))

        line_height = int(size * self._line_spacing)
        cx, cy = box.center
        y = cy - (line_height * len(lines)) // 2
        for line in lines:
            width = draw.textlength(line, font=font)
            draw.text((cx - width / 2, y), line, fill=self._foreground, font=font)
            y += line_height

    def render(
        self,
        image: Image.Image,
        blocks: List[TextBlock],
        image_format: str = "PNG",
        target_language: str = "en",
    ) -> bytes:
        canvas = image.convert("RGB")
        draw = ImageDraw.Draw(canvas)
        for block in blocks:
            if block.translated_text:
                self._draw_block(draw, block, target_language)

        buf = io.BytesIO()
        canvas.save(buf, format=image_format, **_SAVE_OPTIONS.get(image_format, {}))
        return buf.getvalue()

    async def compose(
        self,
        image: Image.Image,
        blocks: List[TextBlock],
        image_format: str = "PNG",
        target_language: str = "en",
    ) -> bytes:
        return await asyncio.to_thread(self.render, image, blocks, image_format, target_language)
