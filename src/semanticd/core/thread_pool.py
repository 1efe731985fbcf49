"""
=============================================================================
THREAD POOL
=============================================================================

Worker threads that serve accepted connections. The accept loop never
handles a request itself; it submits the connection and goes straight
back to accept().

    accept loop ──submit(conn)──► ┌─────────────────────┐
                                  │     Task Queue       │
                                  │ [conn][conn][conn]   │
                                  └──────────┬──────────┘
                                             │ get()
                     ┌───────────────┬───────┴───────┬───────────────┐
                     ▼               ▼               ▼               ▼
                 Worker-0        Worker-1        Worker-2   ...  Worker-N

A worker owns its connection for as long as it stays open (keep-alive
included), so ``max_workers`` bounds the number of clients served at
once. Further connections wait in the queue; when the queue is full too,
``submit`` returns False and the server answers 503.

Workers start at ``min_workers`` and are added, up to ``max_workers``,
whenever every worker is busy and tasks are waiting.

=============================================================================
SHUTDOWN
=============================================================================

``shutdown()`` is what the server's close() uses. Queued connections
are closed and every worker gets a poison pill (None); the pool returns
without waiting for requests already in progress. Workers are daemon
threads, so a request that is still running cannot keep the process
alive.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: ``func(*args, **kwargs)``."""
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Pulls tasks off the queue and runs them until it gets a poison pill.

    A failing task is logged; the worker carries on.
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        super().__init__(name=f"semanticd-worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()
        queued_for = start_time - task.submitted_at

        try:
            task.func(*task.args, **task.kwargs)
            elapsed = time.time() - start_time
            logger.debug(
                f"Worker {self.worker_id} completed task in {elapsed:.3f}s "
                f"(queued {queued_for:.3f}s)"
            )
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Stop after the current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Bounded pool of worker threads fed from a bounded queue.

    Args:
        min_workers: Workers started by ``start()``.
        max_workers: Upper bound when scaling up under load.
        queue_size: Tasks that may wait for a worker; beyond this
                    ``submit(block=False)`` fails.
        idle_timeout: How often idle workers wake to check for shutdown.
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 128,
        idle_timeout: float = 1.0
    ):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"Invalid worker bounds: min={min_workers}, max={max_workers}"
            )

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start ``min_workers`` workers. Does nothing if already started."""
        if self._started:
            return

        logger.debug(f"Starting thread pool with {self.min_workers} workers")

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        """Start one more worker. Caller holds ``_lock``."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
    ) -> bool:
        """
        Queue ``func(*args, **kwargs)`` for a worker.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker when all are busy and work is waiting."""
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return

            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy_count == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self):
        """
        Stop the pool without waiting.

        Tasks still in the queue are dropped and their connections closed.
        Running tasks finish on their own; each worker exits after its
        current task.
        """
        if not self._started or self._shutdown:
            return

        logger.debug("Shutting down thread pool...")
        self._shutdown = True
        self._drain_queue()

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass

        logger.debug("Thread pool shutdown complete")

    def _drain_queue(self):
        """Drop tasks that no worker has picked up yet."""
        dropped = 0
        while True:
            try:
                task = self._task_queue.get(block=False)
            except queue.Empty:
                break
            self._task_queue.task_done()
            if task is not None:
                dropped += 1
                self._discard(task)
        if dropped:
            logger.warning(f"Dropped {dropped} queued tasks on shutdown")

    @staticmethod
    def _discard(task: Task):
        """Release resources held by an unrun task (connections are closed)."""
        for arg in task.args:
            close = getattr(arg, "close", None)
            if callable(close):
                try:
                    close()
                except OSError:
                    pass
