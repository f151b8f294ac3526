"""Parallel execution of per-sequence work.

Example:
    >>> from viralqc.parallel import ParallelExecutor
    >>> executor = ParallelExecutor(n_workers=4, backend="threads")
    >>> results, stats = executor.map_items(func, items)
"""

from viralqc.parallel.executor import (
    ExecutionStats,
    ExecutorBackend,
    ParallelExecutor,
    TaskResult,
    create_progress_bar,
    get_optimal_workers,
)

__all__ = [
    "ExecutorBackend",
    "ExecutionStats",
    "ParallelExecutor",
    "TaskResult",
    "create_progress_bar",
    "get_optimal_workers",
]
