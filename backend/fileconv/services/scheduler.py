"""
Async execution scheduler
Dispatches accepted jobs to a bounded worker pool without blocking the caller
"""
import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional, Set

from fileconv.core.errors import CapacityExceeded
from fileconv.services.conversion_runner import ConversionRunner

logger = logging.getLogger(__name__)


class JobScheduler:
    """
    One asyncio task per job; at most max_concurrent run at once on the
    thread pool, and at most max_concurrent + max_queued are in flight.
    Capacity can be reserved before a job exists so that callers can be
    rejected without creating anything.
    """

    def __init__(
        self,
        runner: ConversionRunner,
        max_concurrent: int = 4,
        max_queued: int = 100,
        timeout_seconds: Optional[float] = 300,
    ):
        self._runner = runner
        self._max_concurrent = max_concurrent
        self._capacity = max_concurrent + max_queued
        self._timeout = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._executor = ThreadPoolExecutor(max_workers=max_concurrent, thread_name_prefix="conversion")
        self._tasks: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, threading.Event] = {}
        self._running: Set[str] = set()
        self._reserved = 0
        self._closed = False

    @property
    def in_flight(self) -> int:
        return len(self._tasks) + self._reserved

    @property
    def active(self) -> int:
        return len(self._running)

    def has_capacity(self, count: int = 1) -> bool:
        return not self._closed and self.in_flight + count <= self._capacity

    def reserve(self, count: int = 1) -> None:
        """Claim slots for jobs about to be created; raises CapacityExceeded"""
        if not self.has_capacity(count):
            raise CapacityExceeded(
                f"Conversion queue is full ({self.in_flight}/{self._capacity} jobs). Please retry later."
            )
        self._reserved += count

    def release(self, count: int = 1) -> None:
        """Return reserved slots that were not used"""
        self._reserved = max(0, self._reserved - count)

    def submit(self, job_id: str, reserved: bool = False) -> asyncio.Task:
        """Schedule a pending job; returns immediately"""
        if job_id in self._tasks:
            raise ValueError(f"Job {job_id} is already scheduled")
        if reserved:
            self.release(1)
        elif not self.has_capacity(1):
            raise CapacityExceeded(
                f"Conversion queue is full ({self.in_flight}/{self._capacity} jobs). Please retry later."
            )

        token = threading.Event()
        self._tokens[job_id] = token
        task = asyncio.create_task(self._execute(job_id, token), name=f"conversion-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda finished: self._finished(job_id, finished))
        logger.info(f"Scheduled job {job_id} ({self.in_flight} in flight)")
        return task

    def is_scheduled(self, job_id: str) -> bool:
        return job_id in self._tasks

    def cancel(self, job_id: str) -> bool:
        """
        Request cancellation. A queued job is dropped immediately; a running
        job stops at its next checkpoint. Either way it ends failed.
        """
        task = self._tasks.get(job_id)
        token = self._tokens.get(job_id)
        if task is None or token is None:
            return False
        token.set()
        if job_id not in self._running:
            task.cancel()
        logger.info(f"Cancellation requested for job {job_id}")
        return True

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)

    async def wait_all(self, timeout: Optional[float] = None) -> None:
        tasks = set(self._tasks.values())
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    async def _execute(self, job_id: str, token: threading.Event) -> None:
        try:
            async with self._semaphore:
                self._running.add(job_id)
                loop = asyncio.get_running_loop()
                try:
                    await asyncio.wait_for(
                        loop.run_in_executor(self._executor, self._runner.run, job_id, token),
                        timeout=self._timeout,
                    )
                except asyncio.TimeoutError:
                    logger.error(f"Job {job_id} timed out after {self._timeout} seconds")
                    # Settle first so the worker sees a terminal job when it wakes
                    self._runner.fail(job_id, f"Conversion timed out after {self._timeout} seconds")
                    token.set()
        except Exception as e:
            logger.error(f"Scheduler error for job {job_id}: {e}", exc_info=True)
            self._runner.fail(job_id, f"Unexpected error: {e}")

    def _finished(self, job_id: str, task: asyncio.Task) -> None:
        self._running.discard(job_id)
        self._tasks.pop(job_id, None)
        token = self._tokens.pop(job_id, None)
        if task.cancelled():
            # Also covers tasks cancelled before their first step
            if token is not None:
                token.set()
            reason = "Service shutting down" if self._closed else "Conversion cancelled"
            self._runner.fail(job_id, reason)

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and stop the worker pool"""
        self._closed = True
        tasks = list(self._tasks.values())
        for token in self._tokens.values():
            token.set()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info(f"Scheduler stopped ({len(tasks)} jobs cancelled)")
