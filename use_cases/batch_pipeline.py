"""
Concurrent batch pipeline.

    scan -> bounded work queue -> N workers -> results queue -> aggregator

Workers never share mutable state with each other; everything they produce
goes through the results queue to a single aggregator, which is the only
writer of the job's progress while images are in flight. The queue holds
image references only, images are decoded inside the worker, so at most
``concurrency`` decoded pages are alive at once.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, List, Optional, Sequence, Tuple

from domain.errors import SetupError
from domain.job import BatchJob, ChapterProgress
from domain.models import ImageFile, ImageTask, ProcessingResult
from domain.ports import ProgressReporterPort
from engine.config import DEFAULT_CONCURRENCY, DEFAULT_QUEUE_CAPACITY
from engine.log import get_logger
from infrastructure.image_store import output_file_path, write_atomic
from infrastructure.path_scanner import PathScanner

from .translate_page import TranslatePageUseCase

logger = get_logger("pipeline")

# end-of-stream marker for both queues
_CLOSED = object()


class ProgressAggregator:
    """Single writer of a job's progress; publishes a snapshot per result."""

    def __init__(self, job: BatchJob, reporters: Sequence[ProgressReporterPort] = ()):
        self._job = job
        self._reporters = list(reporters)

    def publish(self) -> None:
        snapshot = self._job.snapshot()
        for reporter in self._reporters:
            try:
                reporter.publish(snapshot)
            except Exception as exc:
                logger.warning(f"Progress reporter {type(reporter).__name__} failed: {exc}")

    def record(self, result: ProcessingResult) -> None:
        progress = self._job.progress
        progress.processed += 1
        if result.cancelled:
            progress.cancelled += 1
        elif result.success:
            progress.succeeded += 1
        else:
            progress.failed += 1
            progress.last_error = f"{result.image.relative_path or result.image.name}: {result.error}"

        # results arrive in completion order, so count against the task's own chapter
        chapter = progress.chapters.setdefault(result.task.chapter, ChapterProgress())
        chapter.processed += 1
        progress.current_chapter = result.task.chapter

    async def consume(self, results: asyncio.Queue) -> None:
        while True:
            item = await results.get()
            if item is _CLOSED:
                break
            self.record(item)
            self.publish()


@dataclass
class _BatchPlan:
    images: List[ImageFile]
    output_path: str


class PipelineCoordinator:
    """Runs one batch job through the worker pool.

    Image failures are isolated per task and never fail the batch; only setup
    problems do. ``cancel()`` must be called from the event loop thread.
    """

    def __init__(
        self,
        page: TranslatePageUseCase,
        scanner: Optional[PathScanner] = None,
        reporters: Sequence[ProgressReporterPort] = (),
        concurrency: int = DEFAULT_CONCURRENCY,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if queue_capacity < 1:
            raise ValueError(f"queue_capacity must be >= 1, got {queue_capacity}")
        self._page = page
        self._scanner = scanner or PathScanner()
        self._reporters = list(reporters)
        self._concurrency = concurrency
        self._queue_capacity = queue_capacity
        self._cancel_requested = False
        self._cancel_event: Optional[asyncio.Event] = None

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Stop dequeuing; in-flight images finish but their output is discarded."""
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    async def run(self, job: BatchJob) -> BatchJob:
        """Run ``job`` to a terminal status.

        A ``cancel()`` issued before the call applies to this run. The cancel
        flag is cleared once the run returns, so the coordinator can take the
        next batch.
        """
        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()
        try:
            return await self._run(job)
        finally:
            self._cancel_requested = False
            self._cancel_event = None

    async def _run(self, job: BatchJob) -> BatchJob:
        aggregator = ProgressAggregator(job, self._reporters)
        job.start()
        aggregator.publish()

        try:
            plan = await self._setup(job)
        except SetupError as exc:
            logger.error(f"Batch setup failed: {exc.reason}")
            job.fail(exc.reason)
            aggregator.publish()
            return job

        if self._cancel_event.is_set():
            logger.warning("Batch cancelled before any image was queued")
            job.cancel()
            aggregator.publish()
            return job

        if not plan.images:
            logger.info(f"No images found under {job.input_path}")
            job.complete()
            aggregator.publish()
            return job

        logger.info(
            f"Translating {len(plan.images)} image(s) with {self._concurrency} worker(s) "
            f"-> {plan.output_path}"
        )
        await self._process(plan, aggregator)

        if self._cancel_event.is_set():
            logger.warning(f"Batch cancelled after {job.progress.processed}/{len(plan.images)} image(s)")
            job.cancel()
        else:
            job.complete()
        aggregator.publish()
        return job

    async def _setup(self, job: BatchJob) -> _BatchPlan:
        validation = await asyncio.to_thread(self._scanner.validate, job.input_path)
        if not validation.ok:
            raise SetupError(validation.reason)
        job.output_path = validation.output_path

        try:
            await asyncio.to_thread(
                self._scanner.create_output_directories, job.input_path, job.output_path
            )
        except OSError as exc:
            raise SetupError(f"Cannot create output directory {job.output_path}: {exc}") from exc

        images = await asyncio.to_thread(self._scanner.scan, job.input_path)
        job.progress.total_images = len(images)
        for chapter, chapter_images in self._scanner.group_by_chapter(images).items():
            job.progress.chapters[chapter] = ChapterProgress(total=len(chapter_images))

        if images:
            try:
                await self._page.prepare()
            except SetupError:
                raise
            except Exception as exc:
                raise SetupError(f"Model initialization failed: {exc}") from exc

        return _BatchPlan(images=images, output_path=job.output_path)

    async def _process(self, plan: _BatchPlan, aggregator: ProgressAggregator) -> None:
        work: asyncio.Queue = asyncio.Queue(maxsize=self._queue_capacity)
        results: asyncio.Queue = asyncio.Queue()

        consumer = asyncio.create_task(aggregator.consume(results))
        workers = [
            asyncio.create_task(self._worker(i, work, results, plan.output_path))
            for i in range(self._concurrency)
        ]
        try:
            await self._submit(plan.images, work)
            await asyncio.gather(*workers)
            await results.put(_CLOSED)
            await consumer
        finally:
            pending = [t for t in (*workers, consumer) if not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Queue plumbing
    # ------------------------------------------------------------------

    async def _until_cancelled(self, aw: Awaitable[Any]) -> Tuple[bool, Any]:
        """Await ``aw`` unless cancellation is signalled first."""
        op = asyncio.ensure_future(aw)
        stop = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({op, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not op.done():
                op.cancel()
        if op.done() and not op.cancelled():
            return True, op.result()
        return False, None

    async def _submit(self, images: List[ImageFile], work: asyncio.Queue) -> None:
        for sequence, image in enumerate(images):
            if self._cancel_event.is_set():
                return
            task = ImageTask(image=image, sequence=sequence, chapter=image.chapter)
            # blocks while the queue is full
            queued, _ = await self._until_cancelled(work.put(task))
            if not queued:
                return

        for _ in range(self._concurrency):
            closed, _ = await self._until_cancelled(work.put(_CLOSED))
            if not closed:
                return

    async def _worker(
        self,
        worker_id: int,
        work: asyncio.Queue,
        results: asyncio.Queue,
        output_root: str,
    ) -> None:
        while not self._cancel_event.is_set():
            try:
                task = work.get_nowait()
            except asyncio.QueueEmpty:
                got, task = await self._until_cancelled(work.get())
                if not got:
                    break
            if task is _CLOSED or self._cancel_event.is_set():
                break

            result = await self._handle(task, output_root)
            await results.put(result)
        logger.debug(f"Worker {worker_id} stopped")

    # ------------------------------------------------------------------
    # One image
    # ------------------------------------------------------------------

    async def _handle(self, task: ImageTask, output_root: str) -> ProcessingResult:
        image = task.image
        label = image.relative_path or image.name
        try:
            page = await self._page.execute(image)
            if page.image_bytes is None:
                raise RuntimeError("Compositor produced no output")
        except Exception as exc:
            logger.error(f"✗ {label}: {exc}")
            return ProcessingResult.failure(task, f"{type(exc).__name__}: {exc}")

        if self._cancel_event.is_set():
            logger.info(f"  Discarding {label}: batch cancelled")
            return ProcessingResult.discarded(task, page.blocks)

        destination = output_file_path(output_root, image)
        try:
            await asyncio.to_thread(write_atomic, destination, page.image_bytes)
        except OSError as exc:
            logger.error(f"✗ {label}: could not write {destination}: {exc}")
            return ProcessingResult.failure(task, f"Could not write {destination}: {exc}")

        logger.info(f"✓ {label} → {destination} ({len(page.blocks)} block(s))")
        return ProcessingResult(
            task=task,
            success=True,
            output_bytes=page.image_bytes,
            output_path=destination,
            blocks=page.blocks,
        )
