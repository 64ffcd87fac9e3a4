"""
=============================================================================
WORKER POOL
=============================================================================

A FIXED number of worker threads pulling connections from one BOUNDED
queue. This is the concurrency core of the server.

=============================================================================
WHY A FIXED POOL?
=============================================================================

    THREAD PER CONNECTION:
    ──────────────────────

        for conn in accept_connections():
            threading.Thread(target=handle, args=(conn,)).start()

        10,000 clients = 10,000 threads = 10,000 stacks. No upper bound on
        memory, file descriptors or context switches.

    FIXED POOL + BOUNDED QUEUE:
    ───────────────────────────

        pool = WorkerPool(handler, workers=4)      # queue bound = 16
        pool.start()
        for conn in accept_connections():
            pool.submit(conn)                      # blocks when full

        At most 4 connections are processed at once, at most 16 wait.
        When both are full, submit() BLOCKS, the accept loop stops
        calling accept(), and new clients wait in the kernel's listen
        backlog. That is backpressure: the server slows down instead of
        falling over.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          WorkerPool                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ──submit()──►  ┌─────────────────────────────────┐    │
    │                              │ JOB QUEUE (queue.Queue)         │    │
    │                              │ [Job] [Job] [Job] ...           │    │
    │                              │ maxsize = 4 * workers (default) │    │
    │                              └───────────────┬─────────────────┘    │
    │                                              │ get() (blocking)     │
    │                   ┌──────────────┬───────────┼──────────────┐       │
    │                   ▼              ▼           ▼              ▼       │
    │              ┌──────────┐  ┌──────────┐ ┌──────────┐ ┌──────────┐   │
    │              │ Worker-0 │  │ Worker-1 │ │ Worker-2 │ │ Worker-3 │   │
    │              │ handler( │  │ handler( │ │  (idle)  │ │  (idle)  │   │
    │              │   conn)  │  │   conn)  │ │          │ │          │   │
    │              └──────────┘  └──────────┘ └──────────┘ └──────────┘   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    • queue.Queue does all the locking: each Job is handed to exactly one
      worker, and from then on that worker owns the connection
    • The pool never grows or shrinks after start()
    • Queue order is FIFO, but nothing guarantees which Job finishes first

=============================================================================
FAILURE ISOLATION
=============================================================================

    def _execute(job):
        try:
            handler(job.connection)
        except Exception:
            logger.exception(...)      ← log with traceback
            job.connection.close()     ← never leak the socket
        # ...and the worker loops for the next Job

One connection's bug cannot kill a worker, and so cannot shrink the pool.

=============================================================================
SHUTDOWN (POISON PILLS)
=============================================================================

    pool.shutdown()
        1. refuse new submissions
        2. wait=True: let queued Jobs drain (bounded by timeout, if any)
        3. whatever is still queued is discarded, its connection closed
        4. one None ("poison pill") per worker
        5. join every worker

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .connection import Connection


logger = logging.getLogger(__name__)


# Called with the Connection; its return value is ignored
JobHandler = Callable[[Connection], Any]


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"        # Waiting for a Job
    BUSY = "busy"        # Running the handler
    STOPPED = "stopped"  # Thread exited


@dataclass
class Job:
    """
    One accepted connection waiting to be processed.

    Attributes:
        connection: The connection to hand to the handler.
        submitted_at: Time the Job entered the queue.
    """
    connection: Connection
    submitted_at: float = field(default_factory=time.time)

    @property
    def waited(self) -> float:
        """Seconds since submission."""
        return time.time() - self.submitted_at


class Worker(threading.Thread):
    """
    Long-lived thread that runs Jobs until it receives a poison pill.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   1. job = queue.get()          (blocks while the queue is empty)   │
    │   2. job is None?  → exit                                           │
    │   3. handler(job.connection)    (exceptions logged, not raised)     │
    │   4. queue.task_done(), back to 1                                   │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, job_queue: queue.Queue, handler: JobHandler, worker_id: int):
        """
        Args:
            job_queue: Queue shared by all workers of the pool.
            handler: Called once per Job with its connection.
            worker_id: Number used in the thread name (Worker-<id>).
        """
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.job_queue = job_queue
        self.handler = handler
        self.worker_id = worker_id

        self.state = WorkerState.IDLE

        self.jobs_completed = 0
        self.jobs_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            job = self.job_queue.get()
            try:
                if job is None:
                    break
                self._execute(job)
            finally:
                self.job_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, job: Job):
        """Run the handler for one Job. Never raises."""
        self.state = WorkerState.BUSY
        start_time = time.time()
        logger.debug(
            f"Worker {self.worker_id} took [{job.connection.id}] "
            f"after {job.waited:.3f}s in queue"
        )

        try:
            self.handler(job.connection)
            self.jobs_completed += 1
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} job [{job.connection.id}] "
                f"failed after {elapsed:.3f}s: {e}"
            )
            self.jobs_failed += 1
            job.connection.close()
        finally:
            self.state = WorkerState.IDLE


class WorkerPool:
    """
    Fixed-size pool of workers fed by a bounded job queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   pool = WorkerPool(handler, workers=4)    # queue bound 16          │
    │   pool.start()                                                       │
    │                                                                      │
    │   pool.submit(conn)                  # blocks while the queue is full│
    │   pool.submit(conn, timeout=1.0)     # False if still full after 1s  │
    │                                                                      │
    │   pool.stats                         # {"workers": {...}, "jobs": …} │
    │   pool.shutdown(wait=True, timeout=30.0)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        handler: JobHandler,
        workers: int = 4,
        queue_size: Optional[int] = None,
    ):
        """
        Args:
            handler: Callable run once per connection (a ConnectionHandler).
            workers: Number of worker threads, fixed for the pool's lifetime.
            queue_size: Maximum queued Jobs. None means 4 * workers.
                        0 means unbounded and must be asked for explicitly.

        Raises:
            ValueError: workers < 1 or queue_size < 0.
        """
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if queue_size is None:
            queue_size = 4 * workers
        if queue_size < 0:
            raise ValueError("queue_size must be >= 0")

        self.handler = handler
        self.size = workers
        self.queue_size = queue_size

        self._job_queue: queue.Queue[Optional[Job]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutting_down = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self):
        """Launch the workers. Calling it again is a no-op."""
        with self._lock:
            if self._started:
                return

            bound = self.queue_size or "unbounded"
            logger.info(f"Starting worker pool with {self.size} workers (queue: {bound})")

            for worker_id in range(self.size):
                worker = Worker(self._job_queue, self.handler, worker_id)
                self._workers.append(worker)
                worker.start()

            self._started = True

    def submit(
        self,
        connection: Connection,
        block: bool = True,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Queue a connection for processing.

        Args:
            connection: Accepted connection. Ownership passes to the pool
                        when this returns True.
            block: Wait for room when the queue is full.
            timeout: With block=True, give up after this many seconds.

        Returns:
            True if queued. False if the queue stayed full; the caller
            still owns the connection.

        Raises:
            RuntimeError: The pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Worker pool not started")
        if self._shutting_down:
            raise RuntimeError("Worker pool is shutting down")

        try:
            self._job_queue.put(Job(connection), block=block, timeout=timeout)
            return True
        except queue.Full:
            return False

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool and join every worker.

        Args:
            wait: Let queued Jobs run before stopping. With wait=False
                  they are discarded straight away.
            timeout: Upper bound on the drain when wait=True. Jobs still
                     queued after it are discarded (connections closed).
                     Jobs already running are always allowed to finish.
        """
        with self._lock:
            if not self._started or self._shutting_down:
                return
            self._shutting_down = True

        logger.info("Shutting down worker pool...")

        if wait:
            if timeout is None:
                self._job_queue.join()
            else:
                deadline = time.time() + timeout
                while not self._job_queue.empty():
                    if time.time() > deadline:
                        logger.warning("Worker pool drain timed out")
                        break
                    time.sleep(0.1)

        discarded = self._discard_pending()
        if discarded:
            logger.warning(f"Discarded {discarded} queued connections")

        for _ in self._workers:
            self._job_queue.put(None)

        for worker in self._workers:
            worker.join()

        # a submit() racing the flag above may have slipped in
        self._discard_pending()

        logger.info("Worker pool shutdown complete")

    def _discard_pending(self) -> int:
        """Remove queued Jobs, close their connections. Pills are put back."""
        discarded = 0
        pills = 0
        while True:
            try:
                job = self._job_queue.get_nowait()
            except queue.Empty:
                break
            if job is None:
                pills += 1
            else:
                job.connection.close()
                discarded += 1
            self._job_queue.task_done()

        for _ in range(pills):
            self._job_queue.put(None)
        return discarded

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def alive_workers(self) -> int:
        """Worker threads still running."""
        return sum(1 for w in self._workers if w.is_alive())

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_depth(self) -> int:
        """Jobs waiting in the queue (approximate, like Queue.qsize())."""
        return self._job_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and job counters, for logs and tests."""
        return {
            "workers": {
                "total": len(self._workers),
                "alive": self.alive_workers,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "jobs": {
                "queued": self.queue_depth,
                "completed": sum(w.jobs_completed for w in self._workers),
                "failed": sum(w.jobs_failed for w in self._workers),
            },
        }
