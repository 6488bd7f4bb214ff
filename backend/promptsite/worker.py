"""
Background job queue. Requests only enqueue; a fixed pool of worker tasks
runs jobs detached from any HTTP request. Clients follow progress by
polling the job store.
"""

import asyncio
from typing import Awaitable, Callable

from promptsite.models import JobRequest


class JobQueue:
    def __init__(self, worker_count: int = 2):
        self.worker_count = max(1, worker_count)
        self._queue: asyncio.Queue[JobRequest] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._handler: Callable[[JobRequest], Awaitable[None]] | None = None

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self, handler: Callable[[JobRequest], Awaitable[None]]) -> None:
        """Start the worker tasks. Call from server lifespan."""
        if self._workers:
            return
        self._handler = handler
        self._workers = [
            asyncio.create_task(self._worker_loop(i)) for i in range(self.worker_count)
        ]
        print(f"[worker] Started {self.worker_count} worker(s)")

    async def enqueue(self, request: JobRequest) -> None:
        await self._queue.put(request)
        print(f"[worker] Queued {request.job_id} ({self._queue.qsize()} waiting)")

    async def join(self) -> None:
        """Wait until every queued job has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        print("[worker] Stopped")

    async def _worker_loop(self, index: int):
        while True:
            request = await self._queue.get()
            try:
                await self._handler(request)
            except Exception as e:
                # The orchestrator has already recorded the failure if it could
                print(f"[worker-{index}] Job {request.job_id} crashed: {e}")
            finally:
                self._queue.task_done()
