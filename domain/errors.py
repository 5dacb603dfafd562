"""
Error taxonomy for batch translation.

Failures are classified by kind and handled by dispatching on the kind,
not on an exception hierarchy.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class ErrorKind(str, Enum):
    SETUP = "setup"
    IMAGE = "image"
    CACHE = "cache"
    CANCELLED = "cancelled"


class TranslationErrorKind(str, Enum):
    INITIALIZATION = "initialization"
    DOWNLOAD = "download"
    TRANSLATION = "translation"
    NETWORK = "network"


@dataclass(frozen=True)
class TranslationIssue:
    """A recovered translation-engine failure."""

    kind: TranslationErrorKind
    exception: BaseException
    text: Optional[str] = None
    language_pair: Optional[Tuple[str, str]] = None


class SetupError(Exception):
    """Batch setup failed before any image was queued."""

    def __init__(self, reason: str, kind: ErrorKind = ErrorKind.SETUP):
        super().__init__(reason)
        self.reason = reason
        self.kind = kind


class OcrError(Exception):
    """Text detection failed for one image; the image has no usable regions."""


class CacheError(Exception):
    """The translation cache could not be read or written."""

    kind = ErrorKind.CACHE


class InvalidTransition(ValueError):
    """A batch job was moved to a state its current state cannot reach."""
