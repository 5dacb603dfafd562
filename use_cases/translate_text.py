"""Cache-first text translation shared by all pipeline workers."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import py3langid as langid
import requests

from domain.errors import (
    CacheError,
    SetupError,
    TranslationErrorKind,
    TranslationIssue,
)
from domain.models import TextBlock
from domain.ports import TranslationCachePort, TranslatorPort
from engine.config import AUTO_LANGUAGE
from engine.log import get_logger
from infrastructure.translation_cache import normalize_source_text

logger = get_logger("translation")

TranslatorFactory = Callable[[str, str], TranslatorPort]
LanguagePair = Tuple[str, str]


def is_network_error(exc: BaseException) -> bool:
    network_types = (requests.RequestException, OSError)
    if isinstance(exc, network_types) or isinstance(exc.__cause__, network_types):
        return True
    return "network" in str(exc).lower()


def _describe(issue: TranslationIssue) -> str:
    pair = "->".join(issue.language_pair) if issue.language_pair else "?"
    if issue.kind is TranslationErrorKind.INITIALIZATION:
        return f"Translator initialization failed for {pair}"
    if issue.kind is TranslationErrorKind.DOWNLOAD:
        return f"Model download failed for {pair}"
    if issue.kind is TranslationErrorKind.NETWORK:
        return f"Network error during translation ({pair})"
    preview = (issue.text or "")[:40]
    return f"Translation failed for text {preview!r} ({pair})"


def handle_translation_issue(issue: TranslationIssue) -> None:
    logger.error(f"{_describe(issue)}: {issue.exception}")


class TranslatorRegistry:
    """Lazily creates and prepares one translator handle per language pair."""

    def __init__(self, factory: TranslatorFactory):
        self._factory = factory
        self._translators: Dict[LanguagePair, TranslatorPort] = {}
        self._lock = asyncio.Lock()

    async def get(self, source_language: str, target_language: str) -> TranslatorPort:
        key = (source_language, target_language)
        translator = self._translators.get(key)
        if translator is not None:
            return translator
        async with self._lock:
            translator = self._translators.get(key)
            if translator is None:
                translator = self._factory(source_language, target_language)
                await translator.prepare()
                self._translators[key] = translator
        return translator

    def __contains__(self, pair: LanguagePair) -> bool:
        return pair in self._translators


@dataclass
class TranslationStats:
    requests: int = 0
    cache_hits: int = 0
    engine_calls: int = 0
    fallbacks: int = 0


class TranslationService:
    """
    Resolves text through the cache first and the translation engine second.

    Concurrent requests for the same (text, source, target) share one lookup,
    so the engine sees at most one call per distinct key while it stays cached.
    Engine failures fall back to the original text; cache failures count as
    misses.
    """

    def __init__(
        self,
        cache: TranslationCachePort,
        translator_factory: TranslatorFactory,
        source_language: str = "ja",
        issue_handler: Callable[[TranslationIssue], None] = handle_translation_issue,
    ):
        self._cache = cache
        self._registry = TranslatorRegistry(translator_factory)
        self._source_language = source_language
        self._issue_handler = issue_handler
        self._inflight: Dict[Tuple[str, str, str], asyncio.Future] = {}
        self.stats = TranslationStats()

    @property
    def registry(self) -> TranslatorRegistry:
        return self._registry

    async def prepare(self, target_language: str) -> None:
        if self._source_language == AUTO_LANGUAGE:
            logger.debug("Source language is auto-detected; translators load on first use")
            return
        pair = (self._source_language, target_language)
        try:
            await self._registry.get(*pair)
        except Exception as exc:
            self._issue_handler(TranslationIssue(TranslationErrorKind.DOWNLOAD, exc, language_pair=pair))
            raise SetupError(f"Translation model unavailable for {pair[0]}->{pair[1]}: {exc}") from exc

    def resolve_source_language(self, text: str, hint: Optional[str] = None) -> str:
        if self._source_language != AUTO_LANGUAGE:
            return self._source_language
        if hint:
            return hint
        lang, _score = langid.classify(text)
        return lang

    async def translate(
        self,
        text: str,
        target_language: str,
        source_hint: Optional[str] = None,
    ) -> str:
        if not text or not text.strip():
            return text

        self.stats.requests += 1
        source_language = self.resolve_source_language(text, source_hint)
        key = (normalize_source_text(text), source_language, target_language)

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._resolve(text, source_language, target_language))
            self._inflight[key] = pending
            pending.add_done_callback(lambda _f, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(pending)

    async def _resolve(self, text: str, source_language: str, target_language: str) -> str:
        pair = (source_language, target_language)
        try:
            cached = await asyncio.to_thread(self._cache.get, text, source_language, target_language)
        except CacheError as exc:
            logger.warning(f"Cache lookup failed, translating anyway: {exc}")
            cached = None
        if cached is not None:
            self.stats.cache_hits += 1
            return cached

        try:
            translator = await self._registry.get(*pair)
        except Exception as exc:
            self.stats.fallbacks += 1
            self._issue_handler(TranslationIssue(
                TranslationErrorKind.INITIALIZATION, exc, text=text, language_pair=pair,
            ))
            return text

        self.stats.engine_calls += 1
        try:
            translated = await translator.translate(text, target_language)
        except Exception as exc:
            self.stats.fallbacks += 1
            kind = TranslationErrorKind.NETWORK if is_network_error(exc) else TranslationErrorKind.TRANSLATION
            self._issue_handler(TranslationIssue(kind, exc, text=text, language_pair=pair))
            return text

        try:
            await asyncio.to_thread(self._cache.put, text, translated, source_language, target_language)
        except CacheError as exc:
            logger.warning(f"Could not cache translation: {exc}")
        return translated

    async def translate_blocks(self, blocks: List[TextBlock], target_language: str) -> List[TextBlock]:
        for block in blocks:
            block.translated_text = await self.translate(block.text, target_language, block.language)
        return blocks
