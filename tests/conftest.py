"""Shared fakes and folder fixtures for the pipeline tests."""

import asyncio
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import pytest
from PIL import Image

from domain.errors import CacheError
from domain.models import BoundingBox, PageTranslation, TextRegion
from infrastructure.translation_cache import TranslationCache


def make_image(path: Path, size: Tuple[int, int] = (64, 48), color=(255, 255, 255)) -> Path:
    """Write a small solid-colour page image."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path)
    return path


def make_chapter(root: Path, names: Iterable[str]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name in names:
        make_image(root / name)
    return root


def region(text: str, left: int, top: int, right: int, bottom: int, **kwargs) -> TextRegion:
    return TextRegion(text=text, bbox=BoundingBox(left, top, right, bottom), **kwargs)


class FakeOcr:
    """OCR stand-in returning fixed regions, or raising ``error``."""

    def __init__(self, regions: Optional[List[TextRegion]] = None, error: Optional[Exception] = None):
        self.regions = regions or []
        self.error = error
        self.prepared = 0
        self.calls = 0

    async def prepare(self) -> None:
        self.prepared += 1

    async def detect(self, image) -> List[TextRegion]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.regions)


class FakeTranslator:
    def __init__(self, source: str, target: str, fail_with: Optional[Exception] = None, delay: float = 0.0):
        self.pair = (source, target)
        self.fail_with = fail_with
        self.delay = delay
        self.prepared = False
        self.calls: List[str] = []

    async def prepare(self) -> None:
        self.prepared = True

    async def translate(self, text: str, target_language: str) -> str:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return f"[{target_language}] {text}"


class TranslatorFactory:
    """Records every translator it builds."""

    def __init__(self, **translator_kwargs):
        self.kwargs = translator_kwargs
        self.created: List[FakeTranslator] = []

    def __call__(self, source: str, target: str) -> FakeTranslator:
        translator = FakeTranslator(source, target, **self.kwargs)
        self.created.append(translator)
        return translator

    @property
    def engine_calls(self) -> int:
        return sum(len(t.calls) for t in self.created)


class FakeCompositor:
    def __init__(self):
        self.calls: List[Tuple[int, str, str]] = []

    async def compose(self, image, blocks, image_format="PNG", target_language="en") -> bytes:
        self.calls.append((len(blocks), image_format, target_language))
        return f"{image_format}:{len(blocks)}".encode()


class FakePage:
    """Per-image step stand-in for pipeline tests.

    ``gate`` holds every image inside ``execute`` until it is set, which lets a
    test cancel while images are in flight.
    """

    def __init__(
        self,
        fail_names: Iterable[str] = (),
        gate: Optional[asyncio.Event] = None,
        prepare_error: Optional[Exception] = None,
        on_execute: Optional[Callable[[str], None]] = None,
    ):
        self.fail_names = set(fail_names)
        self.gate = gate
        self.prepare_error = prepare_error
        self.on_execute = on_execute
        self.prepared = 0
        self.started: List[str] = []

    async def prepare(self) -> None:
        self.prepared += 1
        if self.prepare_error is not None:
            raise self.prepare_error

    async def execute(self, image_file) -> PageTranslation:
        self.started.append(image_file.relative_path)
        if self.on_execute is not None:
            self.on_execute(image_file.name)
        if self.gate is not None:
            await self.gate.wait()
        if image_file.name in self.fail_names:
            raise RuntimeError("OCR engine crashed")
        return PageTranslation(blocks=[], image_bytes=f"translated:{image_file.name}".encode())


class RecordingReporter:
    def __init__(self):
        self.snapshots = []

    def publish(self, snapshot) -> None:
        self.snapshots.append(snapshot)


class FailingCache:
    """Cache whose backing store is broken."""

    def get(self, *args) -> Optional[str]:
        raise CacheError("database is locked")

    def put(self, *args) -> None:
        raise CacheError("database is locked")


class Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def cache():
    """In-memory translation cache."""
    with TranslationCache() as c:
        yield c


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def translator_factory() -> TranslatorFactory:
    return TranslatorFactory()


@pytest.fixture
def chapter_dir(tmp_path: Path) -> Path:
    """A single chapter with three pages, created out of order."""
    return make_chapter(tmp_path / "manga" / "chapter1", ["page10.png", "page2.png", "page1.png"])


@pytest.fixture
def series_dir(tmp_path: Path) -> Path:
    """A series with two chapters of two pages each."""
    root = tmp_path / "series1"
    make_chapter(root / "chapter2", ["001.png", "002.jpg"])
    make_chapter(root / "chapter1", ["001.png", "002.png"])
    return root


def chapter_of(tmp_path: Path, count: int, name: str = "chapter1") -> Path:
    return make_chapter(tmp_path / name, [f"page{i}.png" for i in range(1, count + 1)])


def output_files(root: Path) -> Dict[str, bytes]:
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*")) if p.is_file()
    }
