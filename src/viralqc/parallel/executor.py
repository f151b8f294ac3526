"""Local parallel execution over sequence units.

Per-sequence processing shares only read-only model data, so units can
run on any backend without locking. Every unit is isolated: a failure
produces a failed :class:`TaskResult` and never affects other units.
Results arrive in completion order; the task id (the sequence id)
identifies each one.

Features:
    - Multiple execution backends (serial, threads, processes)
    - Progress callbacks (rich progress bar helper)
    - Per-task timing and error capture

Example:
    >>> from viralqc.parallel.executor import ParallelExecutor
    >>> executor = ParallelExecutor(n_workers=4, backend="threads")
    >>> results, stats = executor.map_items(engine.run_unit, units, key=lambda u: u.sequence_id)
"""

from __future__ import annotations

import functools
import logging
import os
import time
from concurrent.futures import (
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from enum import Enum
from typing import Any, Callable, Sequence, TypeVar

import attrs
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# =============================================================================
# Enums
# =============================================================================


class ExecutorBackend(Enum):
    """Available execution backends."""

    SERIAL = "serial"
    THREADS = "threads"
    PROCESSES = "processes"


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class TaskResult:
    """Result from one task.

    Attributes:
        task_id: Identifier of the work item (the sequence id).
        success: Whether the task returned normally.
        result: Return value of the task.
        error: Error message if the task raised.
        error_type: Name of the exception class if the task raised.
        duration_seconds: Wall time spent in the task.
    """

    task_id: str
    success: bool
    result: Any | None = None
    error: str | None = None
    error_type: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "task_id": self.task_id,
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@attrs.define(slots=True)
class ExecutionStats:
    """Statistics from parallel execution."""

    total_tasks: int
    successful: int
    failed: int
    total_duration: float
    mean_task_duration: float
    max_task_duration: float

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total_tasks": self.total_tasks,
            "successful": self.successful,
            "failed": self.failed,
            "total_duration": round(self.total_duration, 3),
            "mean_task_duration": round(self.mean_task_duration, 3),
            "max_task_duration": round(self.max_task_duration, 3),
        }


@attrs.define
class _ItemWrapper:
    """Pairs a work item with its task id."""

    task_id: str
    item: Any


def _run_timed(func: Callable[[Any], Any], wrapped: _ItemWrapper) -> TaskResult:
    """Run one task, capturing its result or error.

    Module level so it can be sent to worker processes.
    """
    start_time = time.time()
    try:
        result = func(wrapped.item)
    except Exception as e:
        return TaskResult(
            task_id=wrapped.task_id,
            success=False,
            error=str(e),
            error_type=type(e).__name__,
            duration_seconds=time.time() - start_time,
        )
    return TaskResult(
        task_id=wrapped.task_id,
        success=True,
        result=result,
        duration_seconds=time.time() - start_time,
    )


# =============================================================================
# Parallel Executor
# =============================================================================


class ParallelExecutor:
    """Execute tasks over independent work items.

    Features:
    - Multiple backends (serial, threads, processes)
    - Progress tracking with callbacks
    - Graceful error handling (continue on failure)

    Example:
        >>> executor = ParallelExecutor(n_workers=4, backend="processes")
        >>> results, stats = executor.map_items(run_unit, units)
        >>> print(f"Processed {stats.successful}/{stats.total_tasks} units")
    """

    def __init__(
        self,
        n_workers: int = 1,
        backend: ExecutorBackend | str = ExecutorBackend.PROCESSES,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            n_workers: Number of parallel workers (1 = serial).
            backend: Execution backend.
            progress_callback: Called with (completed, total, task_id).
        """
        self.n_workers = max(1, n_workers)
        self.backend = (
            ExecutorBackend(backend) if isinstance(backend, str) else backend
        )
        self.progress_callback = progress_callback

        # Auto-select serial if n_workers=1
        if self.n_workers == 1:
            self.backend = ExecutorBackend.SERIAL

    def map_items(
        self,
        func: Callable[[T], R],
        items: Sequence[T],
        key: Callable[[T], str] | None = None,
        continue_on_error: bool = True,
    ) -> tuple[list[TaskResult], ExecutionStats]:
        """Apply a function to each item.

        Args:
            func: Function to apply to each item. Must be picklable for
                the processes backend.
            items: Items to process.
            key: Task id for an item (defaults to ``item_<index>``).
            continue_on_error: Continue after a failed task.

        Returns:
            Tuple of (results in completion order, execution_stats).

        Raises:
            RuntimeError: If a task fails and ``continue_on_error`` is False.
        """
        if not items:
            return [], ExecutionStats(
                total_tasks=0,
                successful=0,
                failed=0,
                total_duration=0.0,
                mean_task_duration=0.0,
                max_task_duration=0.0,
            )

        wrapped = [
            _ItemWrapper(key(item) if key else f"item_{i:06d}", item)
            for i, item in enumerate(items)
        ]
        logger.info(
            f"Processing {len(wrapped)} items with {self.n_workers} workers "
            f"(backend={self.backend.value})"
        )

        start_time = time.time()
        if self.backend == ExecutorBackend.SERIAL:
            results = self._execute_serial(func, wrapped, continue_on_error)
        elif self.backend == ExecutorBackend.THREADS:
            results = self._execute_pool(ThreadPoolExecutor, func, wrapped, continue_on_error)
        else:
            results = self._execute_pool(ProcessPoolExecutor, func, wrapped, continue_on_error)

        total_duration = time.time() - start_time
        successful = sum(1 for r in results if r.success)
        failed = len(results) - successful
        durations = [r.duration_seconds for r in results]

        stats = ExecutionStats(
            total_tasks=len(results),
            successful=successful,
            failed=failed,
            total_duration=total_duration,
            mean_task_duration=sum(durations) / len(durations) if durations else 0,
            max_task_duration=max(durations) if durations else 0,
        )

        logger.info(
            f"Completed: {successful}/{len(wrapped)} items, "
            f"duration={total_duration:.1f}s"
        )
        return results, stats

    def _execute_serial(
        self,
        func: Callable,
        wrapped: list[_ItemWrapper],
        continue_on_error: bool,
    ) -> list[TaskResult]:
        """Serial execution with progress tracking."""
        results = []
        total = len(wrapped)

        for i, item in enumerate(wrapped):
            task_result = _run_timed(func, item)
            results.append(task_result)

            if self.progress_callback:
                self.progress_callback(i + 1, total, item.task_id)

            if not task_result.success and not continue_on_error:
                logger.error(f"Task {item.task_id} failed: {task_result.error}")
                raise RuntimeError(task_result.error)

        return results

    def _execute_pool(
        self,
        pool_class: type,
        func: Callable,
        wrapped: list[_ItemWrapper],
        continue_on_error: bool,
    ) -> list[TaskResult]:
        """Pool execution; results are collected in completion order."""
        results = []
        total = len(wrapped)
        completed = 0
        timed = functools.partial(_run_timed, func)

        with pool_class(max_workers=self.n_workers) as executor:
            futures: dict[Future, _ItemWrapper] = {
                executor.submit(timed, item): item for item in wrapped
            }

            for future in as_completed(futures):
                completed += 1
                item = futures[future]
                try:
                    task_result = future.result()
                except Exception as e:
                    # the worker itself died (e.g. unpicklable result)
                    task_result = TaskResult(
                        task_id=item.task_id,
                        success=False,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                results.append(task_result)

                if self.progress_callback:
                    self.progress_callback(completed, total, task_result.task_id)

                if not task_result.success and not continue_on_error:
                    logger.error(f"Task {task_result.task_id} failed: {task_result.error}")
                    executor.shutdown(wait=False, cancel_futures=True)
                    raise RuntimeError(task_result.error)

        return results


# =============================================================================
# Utility Functions
# =============================================================================


def get_optimal_workers(max_workers: int | None = None) -> int:
    """Number of workers, capped by the CPU count.

    Args:
        max_workers: Maximum workers (defaults to CPU count).
    """
    cpu_count = os.cpu_count() or 1
    if max_workers is None:
        return cpu_count
    return max(1, min(max_workers, cpu_count))


def create_progress_bar() -> Progress:
    """Create a rich progress bar for parallel execution."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
    )
