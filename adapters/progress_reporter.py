from __future__ import annotations

from typing import Optional

import tqdm

from domain.job import JobStatus, ProgressSnapshot
from engine.log import get_logger

logger = get_logger("progress")


class LoggingProgressReporter:

    def publish(self, snapshot: ProgressSnapshot) -> None:
        if snapshot.status.is_terminal:
            logger.info(
                f"Batch {snapshot.status.value}: {snapshot.processed}/{snapshot.total_images} processed, "
                f"{snapshot.succeeded} succeeded, {snapshot.failed} failed, "
                f"{snapshot.cancelled} cancelled"
            )
            return
        if snapshot.status is not JobStatus.PROCESSING or not snapshot.current_chapter:
            return
        logger.info(
            f"[{snapshot.current_chapter} {snapshot.chapter_processed}/{snapshot.chapter_total}] "
            f"Overall {snapshot.processed}/{snapshot.total_images} "
            f"({snapshot.succeeded} successful)"
        )


class TqdmProgressReporter:
    """Terminal progress bar with the current chapter as postfix."""

    def __init__(self, desc: str = "Translating", **tqdm_kwargs):
        self._desc = desc
        self._kwargs = tqdm_kwargs
        self._bar: Optional[tqdm.tqdm] = None

    def publish(self, snapshot: ProgressSnapshot) -> None:
        if self._bar is None and snapshot.total_images:
            self._bar = tqdm.tqdm(desc=self._desc, total=snapshot.total_images, unit="img", **self._kwargs)
        if self._bar is None:
            return

        self._bar.update(snapshot.processed - self._bar.n)
        if snapshot.current_chapter:
            self._bar.set_postfix(
                chapter=f"{snapshot.current_chapter} {snapshot.chapter_processed}/{snapshot.chapter_total}",
                ok=snapshot.succeeded,
                failed=snapshot.failed,
                refresh=False,
            )
        if snapshot.status.is_terminal:
            self._bar.close()
            self._bar = None
