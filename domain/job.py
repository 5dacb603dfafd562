"""
Batch job state machine and progress snapshots.

A ``BatchJob`` is created by the caller in ``PENDING`` state and moved through
``PROCESSING`` to exactly one terminal state by the pipeline. While images are
in flight only the progress aggregator mutates it.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from .errors import InvalidTransition


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}


@dataclass
class ChapterProgress:
    total: int = 0
    processed: int = 0


@dataclass
class BatchProgress:
    total_images: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    current_chapter: str = ""
    last_error: Optional[str] = None
    chapters: Dict[str, ChapterProgress] = field(default_factory=dict)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Read-only view of a job, handed to progress reporters."""

    job_id: str
    status: JobStatus
    total_images: int
    processed: int
    succeeded: int
    failed: int
    cancelled: int
    current_chapter: str
    chapter_processed: int
    chapter_total: int
    last_error: Optional[str] = None

    @property
    def fraction(self) -> float:
        if not self.total_images:
            return 1.0 if self.status.is_terminal else 0.0
        return self.processed / self.total_images


@dataclass
class BatchJob:
    input_path: str
    target_language: str
    source_language: str = "ja"
    output_path: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    progress: BatchProgress = field(default_factory=BatchProgress)
    reason: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def transition(self, status: JobStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Job {self.id}: cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status.is_terminal:
            self.finished_at = time.time()

    def start(self) -> None:
        self.transition(JobStatus.PROCESSING)

    def complete(self) -> None:
        self.transition(JobStatus.COMPLETED)

    def fail(self, reason: str) -> None:
        self.reason = reason
        self.progress.last_error = reason
        self.transition(JobStatus.FAILED)

    def cancel(self, reason: str = "Cancelled") -> None:
        self.reason = reason
        self.transition(JobStatus.CANCELLED)

    def snapshot(self) -> ProgressSnapshot:
        p = self.progress
        chapter = p.chapters.get(p.current_chapter, ChapterProgress())
        return ProgressSnapshot(
            job_id=self.id,
            status=self.status,
            total_images=p.total_images,
            processed=p.processed,
            succeeded=p.succeeded,
            failed=p.failed,
            cancelled=p.cancelled,
            current_chapter=p.current_chapter,
            chapter_processed=chapter.processed,
            chapter_total=chapter.total,
            last_error=p.last_error,
        )

    def report(self) -> dict:
        elapsed = None
        if self.finished_at is not None:
            elapsed = round(self.finished_at - self.created_at, 3)
        p = self.progress
        return {
            "id": self.id,
            "status": self.status.value,
            "input_path": self.input_path,
            "output_path": self.output_path,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "total": p.total_images,
            "processed": p.processed,
            "succeeded": p.succeeded,
            "failed": p.failed,
            "cancelled": p.cancelled,
            "reason": self.reason,
            "elapsed_seconds": elapsed,
        }
