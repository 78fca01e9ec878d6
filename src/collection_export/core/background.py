"""Background task runner abstraction.

Provides a protocol for submitting and tracking background tasks, with an
in-process asyncio implementation. Every submitted job ends in a terminal
status that callers can await through ``wait()``.
"""

import asyncio
import enum
import uuid
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class JobStatus(enum.StrEnum):
    """Status of a background job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, coro: Coroutine[Any, Any, Any]) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.

        Returns:
            A job ID string for tracking.
        """
        ...

    def get_status(self, job_id: str) -> JobStatus:
        """Get the current status of a background job.

        Args:
            job_id: The job ID returned by submit_task.

        Returns:
            The current job status.
        """
        ...

    async def wait(self, job_id: str) -> JobStatus:
        """Wait until a background job reaches a terminal status.

        Args:
            job_id: The job ID returned by submit_task.

        Returns:
            The terminal job status.
        """
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run in the same process using asyncio.create_task(). Failures are
    logged and recorded as ``FAILED``; they are never re-raised to the
    submitter, and there is no retry.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, JobStatus] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def submit_task(self, coro: Coroutine[Any, Any, Any]) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.

        Returns:
            A job ID string for tracking.
        """
        job_id = str(uuid.uuid4())
        self._jobs[job_id] = JobStatus.PENDING

        async def _run() -> None:
            self._jobs[job_id] = JobStatus.RUNNING
            try:
                await coro
                self._jobs[job_id] = JobStatus.COMPLETED
            except Exception:
                self._jobs[job_id] = JobStatus.FAILED
                logger.exception(f"Background job {job_id} failed")

        task = asyncio.create_task(_run())
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return job_id

    def get_status(self, job_id: str) -> JobStatus:
        """Get the current status of a background job.

        Args:
            job_id: The job ID returned by submit_task.

        Returns:
            The current job status.

        Raises:
            KeyError: If the job ID is not found.
        """
        return self._jobs[job_id]

    async def wait(self, job_id: str) -> JobStatus:
        """Wait until a background job reaches a terminal status.

        Args:
            job_id: The job ID returned by submit_task.

        Returns:
            The terminal job status.

        Raises:
            KeyError: If the job ID is not found.
        """
        status = self._jobs[job_id]
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
            status = self._jobs[job_id]
        return status
