#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from datetime import timedelta
from typing import List, Optional

from adapters.compositor import PillowCompositor
from adapters.ocr_engine import EasyOcrEngine, detect_device
from adapters.progress_reporter import LoggingProgressReporter, TqdmProgressReporter
from adapters.region_merger import OverlapRegionMerger
from adapters.translator import google_translator_factory
from domain.errors import CacheError
from domain.job import BatchJob, JobStatus
from engine.config import (
    CACHE_PATH,
    DEFAULT_CACHE_MAX_AGE,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CONCURRENCY,
    DEFAULT_OVERLAP_THRESHOLD,
    DEFAULT_QUEUE_CAPACITY,
    DEFAULT_SOURCE_LANGUAGE,
    DEFAULT_TARGET_LANGUAGE,
    PipelineSettings,
)
from engine.log import get_logger, setup_logging
from infrastructure.cache_sweeper import CacheSweeper
from infrastructure.json_exporter import save_json
from infrastructure.translation_cache import TranslationCache
from use_cases.batch_pipeline import PipelineCoordinator
from use_cases.translate_page import TranslatePageUseCase
from use_cases.translate_text import TranslationService

logger = get_logger("cli")

_EXIT_CODES = {
    JobStatus.COMPLETED: 0,
    JobStatus.FAILED: 1,
    JobStatus.CANCELLED: 130,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manga-batch",
        description="Translate every page of a manga chapter or series folder",
    )
    parser.add_argument(
        "-i", "--input",
        help="Chapter folder or series folder containing chapter folders",
    )
    parser.add_argument(
        "--source-lang", default=DEFAULT_SOURCE_LANGUAGE,
        help=f"Source language code, or 'auto' to detect per block (default: {DEFAULT_SOURCE_LANGUAGE})",
    )
    parser.add_argument(
        "--target-lang", default=DEFAULT_TARGET_LANGUAGE,
        help=f"Target language code (default: {DEFAULT_TARGET_LANGUAGE})",
    )
    parser.add_argument(
        "--concurrency", type=int, default=DEFAULT_CONCURRENCY,
        help=f"Images processed at once (default: {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument(
        "--queue-capacity", type=int, default=DEFAULT_QUEUE_CAPACITY,
        help=f"Images queued ahead of the workers (default: {DEFAULT_QUEUE_CAPACITY})",
    )
    parser.add_argument(
        "--overlap-threshold", type=float, default=DEFAULT_OVERLAP_THRESHOLD,
        help=f"Coverage ratio above which regions merge (default: {DEFAULT_OVERLAP_THRESHOLD})",
    )
    parser.add_argument(
        "--cache-path", default=CACHE_PATH,
        help=f"Translation cache database (default: {CACHE_PATH})",
    )
    parser.add_argument(
        "--cache-max-age-days", type=float, default=DEFAULT_CACHE_MAX_AGE.days,
        help=f"Evict cached translations older than this (default: {DEFAULT_CACHE_MAX_AGE.days})",
    )
    parser.add_argument(
        "--cache-max-entries", type=int, default=DEFAULT_CACHE_MAX_ENTRIES,
        help=f"Keep at most this many cached translations (default: {DEFAULT_CACHE_MAX_ENTRIES})",
    )
    parser.add_argument(
        "--font",
        help="TrueType font used for translated text (default: Pillow's built-in font)",
    )
    parser.add_argument(
        "--use-gpu", action="store_true",
        help="Use GPU for OCR (auto-detect CUDA or MPS)",
    )
    parser.add_argument(
        "--report",
        help="Write a JSON batch report to this path",
    )
    parser.add_argument(
        "--sweep-cache", action="store_true",
        help="Only evict stale cache entries, then exit",
    )
    parser.add_argument(
        "--no-progress", action="store_true",
        help="Disable the progress bar",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> PipelineSettings:
    device = "cpu"
    if args.use_gpu:
        device, name = detect_device()
        logger.info(f"Device: {name}")
    return PipelineSettings(
        concurrency=args.concurrency,
        queue_capacity=args.queue_capacity,
        overlap_threshold=args.overlap_threshold,
        source_language=args.source_lang,
        target_language=args.target_lang,
        cache_path=args.cache_path,
        cache_max_age=timedelta(days=args.cache_max_age_days),
        cache_max_entries=args.cache_max_entries,
        device=device,
        font_path=args.font,
    )


def build_coordinator(
    settings: PipelineSettings,
    cache: TranslationCache,
    show_progress: bool = True,
) -> PipelineCoordinator:
    translation = TranslationService(
        cache=cache,
        translator_factory=google_translator_factory,
        source_language=settings.source_language,
    )
    page = TranslatePageUseCase(
        ocr=EasyOcrEngine(source_language=settings.source_language, device=settings.device),
        merger=OverlapRegionMerger(settings.overlap_threshold),
        translation=translation,
        compositor=PillowCompositor(font_path=settings.font_path),
        target_language=settings.target_language,
    )
    reporters = [TqdmProgressReporter()] if show_progress else [LoggingProgressReporter()]
    return PipelineCoordinator(
        page,
        reporters=reporters,
        concurrency=settings.concurrency,
        queue_capacity=settings.queue_capacity,
    )


def _install_cancel_handler(coordinator: PipelineCoordinator) -> None:
    loop = asyncio.get_running_loop()

    def _on_interrupt() -> None:
        if coordinator.cancel_requested:
            return
        logger.warning("Interrupt received, finishing in-flight images and stopping...")
        coordinator.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers; Ctrl+C aborts instead
        pass


def open_cache(settings: PipelineSettings, required: bool = False) -> TranslationCache:
    """Open the persistent cache, or an in-memory one if it cannot be opened."""
    try:
        return TranslationCache(settings.cache_path, max_entries=settings.cache_max_entries)
    except CacheError as exc:
        if required:
            raise
        logger.warning(f"{exc}; translations will not be persisted this run")
        return TranslationCache(max_entries=settings.cache_max_entries)


async def run(args: argparse.Namespace, settings: PipelineSettings) -> int:
    with open_cache(settings, required=args.sweep_cache) as cache:
        sweeper = CacheSweeper(cache, settings.cache_max_age, settings.sweep_interval)

        if args.sweep_cache:
            removed = await sweeper.sweep_once()
            print(f"Removed {removed} stale translation(s); {len(cache)} remain in {cache.db_path}")
            return 0

        coordinator = build_coordinator(settings, cache, show_progress=not args.no_progress)
        _install_cancel_handler(coordinator)

        job = BatchJob(
            input_path=args.input,
            target_language=settings.target_language,
            source_language=settings.source_language,
        )
        sweep_task = asyncio.create_task(sweeper.run())
        try:
            await coordinator.run(job)
        finally:
            sweep_task.cancel()
            await asyncio.gather(sweep_task, return_exceptions=True)

    if args.report:
        save_json(job, args.report)
        logger.info(f"Saved report: {args.report}")

    progress = job.progress
    if job.status is JobStatus.FAILED and not progress.total_images:
        print(f"✗ {job.reason}", file=sys.stderr)
    else:
        print(
            f"\n{job.status.value.capitalize()}: {progress.succeeded}/{progress.total_images} translated, "
            f"{progress.failed} failed, {progress.cancelled} cancelled"
        )
        if job.output_path:
            print(f"Results in: {job.output_path}/")
    return _EXIT_CODES.get(job.status, 1)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.sweep_cache and not args.input:
        parser.error("-i/--input is required unless --sweep-cache is given")

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = settings_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        return asyncio.run(run(args, settings))
    except CacheError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
