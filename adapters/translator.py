from __future__ import annotations

import asyncio

from engine.log import get_logger

logger = get_logger("translator")

# deep-translator's Google backend spells a few codes differently
_GOOGLE_CODES = {
    "zh": "zh-CN",
    "zh-tw": "zh-TW",
    "he": "iw",
}


def _google_code(code: str) -> str:
    return _GOOGLE_CODES.get(code.lower(), code)


class GoogleTranslatorAdapter:
    """One handle per language pair, backed by deep-translator."""

    def __init__(self, source_language: str, target_language: str, timeout: float = 30.0):
        self._source = _google_code(source_language)
        self._target = _google_code(target_language)
        self._timeout = timeout
        self._client = None

    @property
    def language_pair(self) -> tuple[str, str]:
        return self._source, self._target

    async def prepare(self) -> None:
        if self._client is not None:
            return
        from deep_translator import GoogleTranslator

        self._client = GoogleTranslator(source=self._source, target=self._target)
        logger.debug(f"Google translator ready for {self._source}->{self._target}")

    async def translate(self, text: str, target_language: str) -> str:
        if self._client is None:
            await self.prepare()
        if _google_code(target_language) != self._target:
            raise ValueError(
                f"Translator for {self._source}->{self._target} "
                f"cannot translate into {target_language}"
            )
        translated = await asyncio.wait_for(
            asyncio.to_thread(self._client.translate, text),
            timeout=self._timeout,
        )
        if translated is None:
            raise RuntimeError("Translation service returned no text")
        return translated


def google_translator_factory(source_language: str, target_language: str) -> GoogleTranslatorAdapter:
    return GoogleTranslatorAdapter(source_language, target_language)
