from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

from ghrunner.runtime.types import ContainerJob


logger = logging.getLogger(__name__)

MAX_CONCURRENT_CONTAINERS = 5
QUEUE_CAPACITY = 100

_STOP = object()


class ContainerWorkerPool:
    """Bounded FIFO of container jobs drained by a fixed set of worker threads.

    Each worker runs one job to completion before taking the next, which caps the
    number of concurrent container creations at the pool size. Submissions never
    block: when the queue is full the job is dropped and counted.
    """

    def __init__(
        self,
        handler: Callable[[ContainerJob], None],
        *,
        workers: int = MAX_CONCURRENT_CONTAINERS,
        capacity: int = QUEUE_CAPACITY,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._handler = handler
        self._workers = workers
        self._capacity = capacity
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=capacity)
        self._threads: list[threading.Thread] = []
        self._stats_lock = threading.Lock()
        self._submitted = 0
        self._dropped = 0
        self._processed = 0
        self._failed = 0

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    @property
    def dropped(self) -> int:
        with self._stats_lock:
            return self._dropped

    def submit(self, job: ContainerJob) -> bool:
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            with self._stats_lock:
                self._dropped += 1
                dropped = self._dropped
            logger.warning("Container creation queue is full, dropping job (dropped so far: %d)", dropped)
            return False
        with self._stats_lock:
            self._submitted += 1
        logger.info("Job added to container creation queue")
        return True

    def pending(self) -> list[ContainerJob]:
        with self._queue.mutex:
            return [item for item in self._queue.queue if item is not _STOP]

    def start(self) -> None:
        if self.running:
            return
        self._threads = [
            threading.Thread(target=self._run_loop, name=f"ghrunner-container-worker-{i}", daemon=True)
            for i in range(self._workers)
        ]
        for t in self._threads:
            t.start()

    def stop(self, *, timeout_s: float = 5.0) -> None:
        # No drain: workers exit once they reach a sentinel; queued jobs behind it are lost.
        threads = self._threads
        for _ in threads:
            try:
                self._queue.put(_STOP, timeout=timeout_s)
            except queue.Full:
                logger.warning("Could not signal all container workers to stop (queue full)")
                break
        for t in threads:
            t.join(timeout=timeout_s)

    def status_snapshot(self) -> dict[str, Any]:
        with self._stats_lock:
            stats = {
                "submitted": self._submitted,
                "dropped": self._dropped,
                "processed": self._processed,
                "failed": self._failed,
            }
        return {
            "running": self.running,
            "workers": self._workers,
            "workers_alive": sum(1 for t in self._threads if t.is_alive()),
            "queue_depth": self._queue.qsize(),
            "queue_capacity": self._capacity,
            **stats,
        }

    def _run_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._execute_one(item)
            finally:
                self._queue.task_done()

    def _execute_one(self, job: ContainerJob) -> None:
        try:
            self._handler(job)
        except Exception as e:
            # Never let one job take a worker down.
            logger.error("Container job failed: %s", e)
            with self._stats_lock:
                self._failed += 1
            return
        with self._stats_lock:
            self._processed += 1
