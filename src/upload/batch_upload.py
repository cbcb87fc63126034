"""Bounded-concurrency batch upload engine.

This module runs the upload primitive over many files with a refilled
pool of in-flight tasks, a per-file timeout, and partial-failure
collection. Every input file yields exactly one outcome, and no per-file
error escapes the batch call.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Sequence

from core.config import CairnConfig
from core.constants import (
    MAX_UPLOAD_CONCURRENCY,
    MEDIUM_BATCH_CONCURRENCY,
    MEDIUM_BATCH_THRESHOLD,
    MEMORY_CHECK_INTERVAL,
)
from core.errors import CairnValidationError
from core.logging_config import get_logger
from core.types import (
    BatchPlan,
    BatchRunOptions,
    BatchUploadResult,
    DatasetProgress,
    FailedUpload,
    ProgressCallback,
    UploadOptions,
    UploadResult,
)
from upload.content_store import UploadPrimitive
from upload.memory_probe import MemoryProbe
from upload.progress import BatchProgressTracker

_LOGGER = get_logger(__name__)
_BYTES_PER_MB = 1024 * 1024

UploadOutcome = UploadResult | FailedUpload


class BatchUploadEngine:
    """Upload many files against one set of upload options."""

    def __init__(
        self,
        primitive: UploadPrimitive,
        config: CairnConfig,
        memory_probe: MemoryProbe | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            primitive: Upload capability storing one file at a time.
            config: Runtime configuration with concurrency and timeout defaults.
            memory_probe: Optional memory sampler; built from config when omitted.
        """
        self._primitive = primitive
        self._config = config
        self._memory_probe = memory_probe or MemoryProbe(config.memory_warning_mb)
        self._listeners: list[ProgressCallback] = []

    def add_progress_listener(self, listener: ProgressCallback) -> Callable[[], None]:
        """Register a listener that receives a copy of every progress update.

        Args:
            listener: Callable invoked once per finished file.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def plan(self, file_count: int) -> BatchPlan:
        """Return the upload strategy for a batch of this size."""
        return plan_batch(file_count, self._config)

    async def upload_batch(
        self,
        files: Sequence[str],
        upload_options: UploadOptions,
        run_options: BatchRunOptions | None = None,
    ) -> BatchUploadResult:
        """Upload files, chunking automatically for large batches.

        Args:
            files: Local file paths.
            upload_options: Options shared by every file.
            run_options: Optional per-call run options.

        Returns:
            Batch outcome.
        """
        if len(files) >= self._config.large_batch_threshold:
            return await self.upload_files_in_chunks(files, upload_options, run_options)
        return await self.upload_files(files, upload_options, run_options)

    async def upload_files(
        self,
        files: Sequence[str],
        upload_options: UploadOptions,
        run_options: BatchRunOptions | None = None,
    ) -> BatchUploadResult:
        """Upload files through one concurrency-bounded pool.

        Args:
            files: Local file paths.
            upload_options: Options shared by every file.
            run_options: Optional per-call run options.

        Returns:
            Batch outcome with successes and failures in completion order.

        Raises:
            CairnValidationError: If the file list is empty.
        """
        _validate_files(files)
        options = run_options or BatchRunOptions()
        concurrency = self._resolve_concurrency(options)
        timeout_seconds = options.timeout_seconds or self._config.upload_timeout_seconds
        started_at = time.monotonic()
        _LOGGER.info(
            "batch_upload_started",
            file_count=len(files),
            concurrency=concurrency,
            timeout_seconds=timeout_seconds,
        )
        tracker = BatchProgressTracker(
            operation=options.operation,
            total=len(files),
            started_at=started_at,
        )
        successes: list[UploadResult] = []
        failures: list[FailedUpload] = []
        await self._run_pool(
            files,
            upload_options,
            concurrency,
            timeout_seconds,
            tracker,
            successes,
            failures,
            options.on_progress,
        )
        result = _build_result(len(files), successes, failures, started_at)
        _log_batch_completion("batch_upload_completed", result)
        return result

    async def upload_files_in_chunks(
        self,
        files: Sequence[str],
        upload_options: UploadOptions,
        run_options: BatchRunOptions | None = None,
    ) -> BatchUploadResult:
        """Upload files in sequential fixed-size windows to bound memory.

        Each window runs through the same bounded pool. Progress is
        cumulative across the whole file set, and window buffers are
        dropped once their outcomes are accumulated.

        Args:
            files: Local file paths.
            upload_options: Options shared by every file.
            run_options: Optional per-call run options.

        Returns:
            Batch outcome for the whole file set.

        Raises:
            CairnValidationError: If the file list is empty.
        """
        _validate_files(files)
        options = run_options or BatchRunOptions()
        concurrency = self._resolve_concurrency(options)
        timeout_seconds = options.timeout_seconds or self._config.upload_timeout_seconds
        chunk_size = max(1, options.chunk_size or self._config.chunk_size)
        chunk_count = (len(files) + chunk_size - 1) // chunk_size
        started_at = time.monotonic()
        _LOGGER.info(
            "chunked_upload_started",
            file_count=len(files),
            chunk_size=chunk_size,
            chunks=chunk_count,
            concurrency=concurrency,
        )
        tracker = BatchProgressTracker(
            operation=options.operation,
            total=len(files),
            started_at=started_at,
        )
        all_successes: list[UploadResult] = []
        all_failures: list[FailedUpload] = []
        for chunk_index, chunk_start in enumerate(range(0, len(files), chunk_size), 1):
            chunk = files[chunk_start : chunk_start + chunk_size]
            _LOGGER.info(
                "upload_chunk_started",
                chunk=chunk_index,
                chunks=chunk_count,
                files=len(chunk),
                processed=tracker.processed,
                total=len(files),
            )
            chunk_successes: list[UploadResult] = []
            chunk_failures: list[FailedUpload] = []
            await self._run_pool(
                chunk,
                upload_options,
                concurrency,
                timeout_seconds,
                tracker,
                chunk_successes,
                chunk_failures,
                options.on_progress,
            )
            all_successes.extend(chunk_successes)
            all_failures.extend(chunk_failures)
            chunk_successes.clear()
            chunk_failures.clear()
            self._memory_probe.observe("upload_chunk_completed", chunk=chunk_index)
        result = _build_result(len(files), all_successes, all_failures, started_at)
        _log_batch_completion("chunked_upload_completed", result)
        return result

    async def _run_pool(
        self,
        files: Sequence[str],
        upload_options: UploadOptions,
        concurrency: int,
        timeout_seconds: float,
        tracker: BatchProgressTracker,
        successes: list[UploadResult],
        failures: list[FailedUpload],
        on_progress: ProgressCallback | None,
    ) -> None:
        remaining = iter(files)
        in_flight: dict[asyncio.Task[UploadOutcome], str] = {}
        for file_path in itertools.islice(remaining, concurrency):
            in_flight[self._launch(file_path, upload_options, timeout_seconds)] = file_path
        try:
            while in_flight:
                done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
                finished = [task for task in in_flight if task in done]
                for task in finished:
                    file_path = in_flight.pop(task)
                    self._record_outcome(
                        file_path, task.result(), tracker, successes, failures, on_progress
                    )
                    next_path = next(remaining, None)
                    if next_path is not None:
                        next_task = self._launch(next_path, upload_options, timeout_seconds)
                        in_flight[next_task] = next_path
        finally:
            for task in in_flight:
                task.cancel()

    def _launch(
        self,
        file_path: str,
        upload_options: UploadOptions,
        timeout_seconds: float,
    ) -> asyncio.Task[UploadOutcome]:
        return asyncio.create_task(self._upload_one(file_path, upload_options, timeout_seconds))

    async def _upload_one(
        self,
        file_path: str,
        upload_options: UploadOptions,
        timeout_seconds: float,
    ) -> UploadOutcome:
        try:
            return await asyncio.wait_for(
                self._primitive.upload(file_path, upload_options),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            return _failed_upload(
                file_path, f"Upload timeout for file: {file_path} after {timeout_seconds}s"
            )
        except Exception as error:
            return _failed_upload(file_path, str(error) or type(error).__name__)

    def _record_outcome(
        self,
        file_path: str,
        outcome: UploadOutcome,
        tracker: BatchProgressTracker,
        successes: list[UploadResult],
        failures: list[FailedUpload],
        on_progress: ProgressCallback | None,
    ) -> None:
        if isinstance(outcome, FailedUpload):
            failures.append(outcome)
            progress = tracker.record_failure(file_path)
            _LOGGER.warning(
                "file_upload_failed",
                file_path=file_path,
                error=outcome.error,
                processed=tracker.processed,
                total=tracker.total,
            )
        else:
            successes.append(outcome)
            progress = tracker.record_success(file_path)
            _LOGGER.debug(
                "file_uploaded",
                file_path=file_path,
                cid=outcome.cid,
                size=outcome.size,
                processed=tracker.processed,
                total=tracker.total,
            )
        self._notify(progress, on_progress)
        if tracker.processed % MEMORY_CHECK_INTERVAL == 0:
            self._memory_probe.observe("batch_upload", processed=tracker.processed)

    def _notify(self, progress: DatasetProgress, on_progress: ProgressCallback | None) -> None:
        callbacks = list(self._listeners)
        if on_progress is not None:
            callbacks.append(on_progress)
        for callback in callbacks:
            try:
                callback(replace(progress))
            except Exception as error:
                _LOGGER.error("progress_callback_failed", error=str(error))

    def _resolve_concurrency(self, options: BatchRunOptions) -> int:
        requested = options.concurrency or self._config.upload_concurrency
        return max(1, min(requested, MAX_UPLOAD_CONCURRENCY))


def plan_batch(file_count: int, config: CairnConfig) -> BatchPlan:
    """Choose chunking and concurrency from the number of files.

    Args:
        file_count: Number of files in the batch.
        config: Runtime configuration with thresholds.

    Returns:
        Upload strategy for the batch.
    """
    if file_count >= config.large_batch_threshold:
        return BatchPlan(
            use_chunking=True,
            chunk_size=config.chunk_size,
            concurrency=config.upload_concurrency,
        )
    if file_count >= MEDIUM_BATCH_THRESHOLD:
        return BatchPlan(
            use_chunking=False,
            chunk_size=file_count,
            concurrency=min(MEDIUM_BATCH_CONCURRENCY, MAX_UPLOAD_CONCURRENCY),
        )
    return BatchPlan(
        use_chunking=False,
        chunk_size=file_count,
        concurrency=config.upload_concurrency,
    )


def _validate_files(files: Sequence[str]) -> None:
    if not files:
        raise CairnValidationError("At least one file is required for a batch upload.")


def _failed_upload(file_path: str, error: str) -> FailedUpload:
    return FailedUpload(
        file_path=file_path,
        error=error,
        failed_at=datetime.now(timezone.utc),
    )


def _build_result(
    total: int,
    successes: list[UploadResult],
    failures: list[FailedUpload],
    started_at: float,
) -> BatchUploadResult:
    duration_ms = (time.monotonic() - started_at) * 1000
    total_bytes = sum(upload.size for upload in successes)
    average_speed = total_bytes / duration_ms * 1000 if duration_ms > 0 else 0.0
    return BatchUploadResult(
        total=total,
        successful=len(successes),
        failed=len(failures),
        successful_uploads=tuple(successes),
        failed_uploads=tuple(failures),
        duration_ms=duration_ms,
        average_speed=average_speed,
    )


def _log_batch_completion(event: str, result: BatchUploadResult) -> None:
    _LOGGER.info(
        event,
        total=result.total,
        successful=result.successful,
        failed=result.failed,
        duration_ms=round(result.duration_ms, 3),
        average_speed_mbps=round(result.average_speed / _BYTES_PER_MB, 2),
    )
