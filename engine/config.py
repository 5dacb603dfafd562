import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

DEFAULT_CONCURRENCY = 2
DEFAULT_QUEUE_CAPACITY = 8
DEFAULT_OVERLAP_THRESHOLD = 0.5

DEFAULT_SOURCE_LANGUAGE = "ja"
DEFAULT_TARGET_LANGUAGE = "en"
AUTO_LANGUAGE = "auto"

DEFAULT_CACHE_MAX_AGE = timedelta(days=7)
DEFAULT_CACHE_MAX_ENTRIES = 50_000
DEFAULT_SWEEP_INTERVAL = timedelta(hours=1)

OUTPUT_SUFFIX = "-translated"

DATA_DIR = os.path.expanduser(os.getenv("MANGA_BATCH_HOME", "~/.manga-batch"))
CACHE_PATH = os.path.join(DATA_DIR, "translations.db")


@dataclass
class PipelineSettings:
    """Tunables for one batch run."""

    concurrency: int = DEFAULT_CONCURRENCY
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD

    source_language: str = DEFAULT_SOURCE_LANGUAGE
    target_language: str = DEFAULT_TARGET_LANGUAGE

    cache_path: str = CACHE_PATH
    cache_max_age: timedelta = field(default=DEFAULT_CACHE_MAX_AGE)
    cache_max_entries: Optional[int] = DEFAULT_CACHE_MAX_ENTRIES
    sweep_interval: timedelta = field(default=DEFAULT_SWEEP_INTERVAL)

    device: str = "cpu"
    font_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.queue_capacity < 1:
            raise ValueError(f"queue_capacity must be >= 1, got {self.queue_capacity}")
        if not 0.0 <= self.overlap_threshold <= 1.0:
            raise ValueError(
                f"overlap_threshold must be within [0, 1], got {self.overlap_threshold}"
            )
        if self.cache_max_entries is not None and self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be positive when set")
        if not self.target_language or self.target_language == AUTO_LANGUAGE:
            raise ValueError("target_language must be a concrete language code")
