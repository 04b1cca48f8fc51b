"""
=============================================================================
WORKER POOL
=============================================================================

Connections are handled on a bounded set of threads fed from a queue.

    accept loop ──► submit(handle, conn) ──► [ queue ] ──► Worker-0
                                                      ├──► Worker-1
                                                      └──► Worker-N

    - min_workers threads start with the pool.
    - When every worker is busy and work is waiting, one more is started,
      up to max_workers.
    - A full queue makes submit() return False (or block, if asked to).
    - shutdown() waits for queued work, then sends one None per worker.

A failing task is logged and counted; the worker keeps running.
=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.monotonic)

    def run(self) -> Any:
        return self.func(*self.args, **self.kwargs)


class Worker(threading.Thread):
    """Pulls tasks off the shared queue until it receives None."""

    def __init__(self, tasks: "queue.Queue[Optional[Task]]", worker_id: int,
                 poll_interval: float = 1.0):
        super().__init__(name=f"miniweb-worker-{worker_id}", daemon=True)
        self.tasks = tasks
        self.worker_id = worker_id
        self.poll_interval = poll_interval
        self.state = WorkerState.IDLE
        self.completed = 0
        self.failed = 0
        self._stop_requested = threading.Event()

    def run(self) -> None:
        logger.debug(f"Worker {self.worker_id} started")
        while not self._stop_requested.is_set():
            try:
                task = self.tasks.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.tasks.task_done()
        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task) -> None:
        self.state = WorkerState.BUSY
        started = time.monotonic()
        try:
            task.run()
            self.completed += 1
        except Exception:
            self.failed += 1
            logger.exception(
                f"Task failed on worker {self.worker_id} after "
                f"{time.monotonic() - started:.3f}s"
            )
        finally:
            self.state = WorkerState.IDLE

    def stop(self) -> None:
        self._stop_requested.set()


class ThreadPool:
    """
    Bounded, self-growing pool of worker threads.

        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        pool.submit(handle_connection, args=(conn,))
        pool.shutdown()
    """

    def __init__(self, min_workers: int = 4, max_workers: int = 16,
                 max_queue: int = 100):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError("Need 1 <= min_workers <= max_workers")
        self.min_workers = min_workers
        self.max_workers = max_workers
        self._tasks: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=max_queue)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._next_id = 0
        self._running = False
        self._closing = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            for _ in range(self.min_workers):
                self._spawn()
            self._running = True
        logger.info(f"Thread pool started with {self.min_workers} workers")

    def submit(self, func: Callable[..., Any], args: tuple = (),
               kwargs: Optional[Dict[str, Any]] = None, block: bool = False,
               timeout: Optional[float] = None) -> bool:
        """
        Queue `func(*args, **kwargs)`.

        Returns:
            False when the queue is full.

        Raises:
            RuntimeError: if the pool is not running.
        """
        if not self._running or self._closing:
            raise RuntimeError("Thread pool is not running")
        try:
            self._tasks.put(Task(func, args, kwargs or {}), block=block, timeout=timeout)
        except queue.Full:
            return False
        self._grow_if_saturated()
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work, optionally drain the queue, stop every worker."""
        if not self._running:
            return
        logger.info("Shutting down thread pool")
        self._closing = True
        if wait:
            self._tasks.join()

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()
        for worker in workers:
            worker.stop()
            try:
                self._tasks.put_nowait(None)
            except queue.Full:
                pass
        for worker in workers:
            worker.join(timeout=2.0)

        self._running = False
        self._closing = False
        logger.info("Thread pool stopped")

    def _spawn(self) -> Worker:
        worker = Worker(self._tasks, self._next_id)
        self._next_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def _grow_if_saturated(self) -> None:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            if all(w.state is WorkerState.BUSY for w in self._workers) and not self._tasks.empty():
                self._spawn()
                logger.debug(f"Thread pool grew to {len(self._workers)} workers")

    @property
    def size(self) -> int:
        return len(self._workers)

    @property
    def stats(self) -> Dict[str, Any]:
        with self._lock:
            workers = list(self._workers)
        return {
            "workers": len(workers),
            "busy": sum(1 for w in workers if w.state is WorkerState.BUSY),
            "queued": self._tasks.qsize(),
            "completed": sum(w.completed for w in workers),
            "failed": sum(w.failed for w in workers),
        }
