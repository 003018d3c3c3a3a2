"""Worker pool with exception handling for batch research runs.

This module provides a ThreadPoolExecutor wrapper that bounds the number of
in-flight pipeline runs, isolates per-item exceptions, and stops dispatching
new items once a batch is cancelled.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Optional


class WorkerPool:
    """ThreadPoolExecutor wrapper with exception handling for pipeline tasks."""

    def __init__(self, max_workers: int = 1, logger=None):
        """
        Initialize worker pool.

        Args:
            max_workers: Maximum number of concurrent worker threads (default: 1)
            logger: Optional logger instance for logging
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self.logger = logger or logging.getLogger(__name__)
        self._stats_lock = threading.Lock()  # Thread-safe stats updates
        self.stats = {
            "max_workers": max_workers,
            "total_submitted": 0,
            "total_completed": 0,
            "total_successful": 0,
            "total_failed": 0,
            "total_cancelled": 0,
        }

    def map(
        self,
        func: Callable[[Any], Any],
        items: list,
        desc: str = "Processing",
        cancel_event: Optional[threading.Event] = None,
        before_dispatch: Optional[Callable[[], Any]] = None,
    ) -> list[Optional[tuple[bool, Any, Any]]]:
        """
        Process items with at most ``max_workers`` in flight.

        Items are dispatched in input order. Once ``cancel_event`` is set no
        further items are dispatched; items already running are allowed to
        finish.

        Args:
            func: Worker function to execute
            items: List of items to process
            desc: Description for progress reporting
            cancel_event: Optional event that stops dispatch when set
            before_dispatch: Optional hook run before each dispatch (rate limiting)

        Returns:
            List aligned with ``items``: (success, item, result_or_error) for
            dispatched items, None for items never dispatched
        """
        results: list[Optional[tuple[bool, Any, Any]]] = [None] * len(items)
        slots = threading.Semaphore(self.max_workers)

        def _cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_index = {}
            for index, item in enumerate(items):
                if _cancelled():
                    break
                slots.acquire()  # Wait for a free worker before dispatching
                if before_dispatch is not None:
                    before_dispatch()
                if _cancelled():
                    slots.release()
                    break

                future = executor.submit(func, item)
                future.add_done_callback(lambda _f: slots.release())
                future_to_index[future] = index
                with self._stats_lock:
                    self.stats["total_submitted"] += 1

            not_dispatched = len(items) - len(future_to_index)
            if not_dispatched:
                with self._stats_lock:
                    self.stats["total_cancelled"] += not_dispatched
                self.logger.warning(f"{desc}: cancelled, {not_dispatched} item(s) not dispatched")

            # Collect results as they complete
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                item = items[index]
                with self._stats_lock:
                    self.stats["total_completed"] += 1

                try:
                    result = future.result()
                    with self._stats_lock:
                        self.stats["total_successful"] += 1
                    results[index] = (True, item, result)
                    self.logger.debug(f"{desc}: Success for item {item}")

                except Exception as e:
                    with self._stats_lock:
                        self.stats["total_failed"] += 1
                    results[index] = (False, item, e)
                    self.logger.error(f"{desc}: Failed for item {item}: {e}", exc_info=True)

        self.logger.info(
            f"{desc} complete: {self.stats['total_successful']} successful, "
            f"{self.stats['total_failed']} failed, {self.stats['total_cancelled']} cancelled"
        )

        return results

    def get_stats(self) -> dict:
        """Get worker pool statistics."""
        return dict(self.stats)
