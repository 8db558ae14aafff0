"""
=============================================================================
WORKER THREAD POOL
=============================================================================

The listener must never wait for a client. It accepts, drops the new
connection into a queue, and goes straight back to accept(). Worker
threads take connections off the queue and run the whole handshake →
read → respond → close sequence.

=============================================================================
DISPATCH
=============================================================================

    accept thread                 queue                  workers
    ─────────────                 ─────                  ───────

    accept() ──► submit(conn) ──► [c1][c2][c3] ──get()──► Worker-0: c1
        ▲              │                                   Worker-1: c2
        │              │ queue full?                       Worker-2: c3
        │              └──► return False (caller closes)   ...
        └──────────────────────────────────────────────────

    - submit() never blocks: a full queue is reported back immediately.
    - Workers start at min_workers and grow towards max_workers while
      every existing worker is busy and work is waiting.
    - shutdown() waits (bounded) for the queue to drain, then feeds one
      None "poison pill" per worker.

=============================================================================
FAILURE CONTAINMENT
=============================================================================

A task that raises is logged with its traceback and counted. The worker
survives and picks up the next task, so one broken connection can never
take a worker (or the server) down with it.

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
    """A deferred call: func(*args) on some worker thread."""
    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = field(default_factory=time.time)

    @property
    def wait_time(self) -> float:
        return time.time() - self.submitted_at


class Worker(threading.Thread):
    """Daemon thread that runs tasks from the shared queue until poisoned."""

    def __init__(self, task_queue: queue.Queue, worker_id: int, poll_interval: float = 1.0):
        super().__init__(name=f"tls-worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.poll_interval = poll_interval

        self.state = WorkerState.IDLE
        self._stop_event = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task):
        self.state = WorkerState.BUSY
        queued = task.wait_time
        start = time.time()
        try:
            task.func(*task.args)
            self.tasks_completed += 1
            logger.debug(
                f"Worker {self.worker_id} finished task in {time.time() - start:.3f}s "
                f"(queued {queued:.3f}s)"
            )
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        self._stop_event.set()


class ThreadPool:
    """
    Bounded pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=16, queue_size=100)
        pool.start()

        if not pool.submit(handle, conn):
            conn.close()         # overloaded

        pool.shutdown(timeout=10.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        poll_interval: float = 1.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.poll_interval = poll_interval

        self._task_queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._workers: list = []
        self._lock = threading.Lock()
        self._started = False
        self._closing = False
        self._next_worker_id = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._closing

    def start(self):
        """Start min_workers threads. Calling it again is a no-op."""
        with self._lock:
            if self._started:
                return
            logger.info(f"Starting thread pool with {self.min_workers} workers")
            for _ in range(self.min_workers):
                self._spawn_worker()
            self._started = True
            self._closing = False

    def _spawn_worker(self) -> Worker:
        # Caller holds self._lock.
        worker = Worker(self._task_queue, self._next_worker_id, self.poll_interval)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], *args) -> bool:
        """
        Queue func(*args) without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: Pool not started or shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._closing:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._task_queue.put_nowait(Task(func=func, args=args))
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            busy = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._spawn_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks finish before stopping workers.
            timeout: Upper bound in seconds on that wait (None = unbounded).

        Returns:
            Tasks that were still queued and never ran, so the caller can
            release whatever they hold.
        """
        with self._lock:
            if not self._started:
                return []
            self._closing = True
            workers = list(self._workers)

        logger.info("Shutting down thread pool...")

        if wait:
            deadline = None if timeout is None else time.time() + timeout
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.time() > deadline:
                    logger.warning("Thread pool drain timed out, abandoning queued work")
                    break
                time.sleep(0.05)

        for worker in workers:
            worker.stop()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass  # Worker notices the stop event on its next poll

        for worker in workers:
            worker.join(timeout=self.poll_interval + 1.0)

        abandoned = []
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                break
            self._task_queue.task_done()
            if task is not None:
                abandoned.append(task)

        with self._lock:
            self._workers.clear()
            self._started = False

        if abandoned:
            logger.warning(f"{len(abandoned)} queued task(s) never ran")
        logger.info("Thread pool shutdown complete")
        return abandoned

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def pending(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": sum(1 for w in self._workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self.pending,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
