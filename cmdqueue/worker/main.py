"""
Worker process for executing jobs.

The worker claims pending jobs one at a time, runs each command as a
subprocess, and records the outcome. A process may run several loops
concurrently and any number of processes may share one store.
"""

import asyncio
import logging
import os
import signal

from cmdqueue.config import get_settings
from cmdqueue.constants import SPAN_EXECUTE_JOB, CompleteOutcome
from cmdqueue.engine import TransitionEngine
from cmdqueue.errors import StoreUnavailableError
from cmdqueue.observability.logging import job_log_context, setup_logging
from cmdqueue.observability.metrics import get_metrics
from cmdqueue.observability.tracing import job_span, setup_tracing
from cmdqueue.runtime import open_runtime
from cmdqueue.types.job import ExecutionResult, Job
from cmdqueue.worker.executor import run_command

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Claims through the transition engine, so no two workers run one job
    - Cancellable poll wait and graceful shutdown on SIGTERM/SIGINT
    - Subprocess failures recorded as failed jobs, never fatal to the loop
    - Completion retried while the store is unreachable; jobs that still
      cannot be completed are logged as stuck
    """

    def __init__(
        self,
        engine: TransitionEngine,
        worker_id: str | None = None,
        poll_interval: float | None = None,
        concurrency: int | None = None,
        job_timeout: float | None = None,
        output_limit: int | None = None,
        complete_max_retries: int | None = None,
        complete_retry_backoff: float | None = None,
    ):
        """
        Initialize the worker.

        Args:
            engine: Transition engine over the shared store.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            poll_interval: Seconds between polls when the queue is empty.
            concurrency: Number of claim loops run in parallel.
            job_timeout: Seconds before a command is killed. None disables.
            output_limit: Maximum bytes of output stored per job.
            complete_max_retries: Attempts to store a completion before the
                job is reported stuck.
            complete_retry_backoff: Base delay between completion attempts.
        """
        settings = get_settings()

        self.engine = engine
        self.worker_id = (
            worker_id
            or settings.worker_id
            or f"{os.uname().nodename}-{os.getpid()}"
        )
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.concurrency = concurrency or settings.worker_concurrency
        self.job_timeout = (
            job_timeout if job_timeout is not None else settings.worker_job_timeout_seconds
        )
        self.output_limit = output_limit or settings.worker_output_limit_bytes
        self.complete_max_retries = (
            complete_max_retries or settings.worker_complete_max_retries
        )
        self.complete_retry_backoff = (
            complete_retry_backoff
            if complete_retry_backoff is not None
            else settings.worker_complete_retry_backoff_seconds
        )

        self.processed_jobs = 0
        self._stop_event = asyncio.Event()
        self._metrics = get_metrics()

    @property
    def is_stopping(self) -> bool:
        return self._stop_event.is_set()

    async def start(self) -> None:
        """Run the claim loops until ``stop()`` is called."""
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "concurrency": self.concurrency},
        )

        loops = [
            asyncio.create_task(self._run_loop(slot))
            for slot in range(self.concurrency)
        ]
        await asyncio.gather(*loops)

        logger.info(
            "Worker stopped",
            extra={"worker_id": self.worker_id, "processed_jobs": self.processed_jobs},
        )

    async def stop(self) -> None:
        """Stop the worker gracefully. Running jobs finish first."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._stop_event.set()

    async def run_once(self) -> bool:
        """
        Claim and execute at most one job.

        Returns:
            True if a job was claimed, False if the queue was empty.
        """
        job = await self.engine.claim(worker_id=self.worker_id)
        if job is None:
            return False

        await self._execute_job(job)
        self.processed_jobs += 1
        return True

    async def _run_loop(self, slot: int) -> None:
        while not self.is_stopping:
            try:
                processed = await self.run_once()
            except StoreUnavailableError as e:
                logger.warning(
                    "Store unavailable while claiming",
                    extra={"worker_id": self.worker_id, "slot": slot, "error": str(e)},
                )
                processed = False
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id, "slot": slot},
                )
                processed = False

            if not processed:
                await self._wait(self.poll_interval)

    async def _wait(self, seconds: float) -> None:
        """Sleep that returns early when the worker is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _execute_job(self, job: Job) -> None:
        """
        Run a claimed job's command and record the outcome.

        Args:
            job: The job, already running and owned by this worker.
        """
        with job_log_context(job.id, self.worker_id):
            logger.info("Executing job", extra={"command": job.command})

            with job_span(SPAN_EXECUTE_JOB, job_id=job.id, worker_id=self.worker_id) as span:
                result = await run_command(
                    job.command,
                    timeout=self.job_timeout,
                    output_limit=self.output_limit,
                )
                span.set_attribute("success", result.success)

            if result.success:
                logger.info(
                    "Command succeeded",
                    extra={"duration_ms": result.duration_ms},
                )
            else:
                logger.warning(
                    "Command failed",
                    extra={
                        "exit_code": result.exit_code,
                        "error": result.error,
                        "duration_ms": result.duration_ms,
                    },
                )

            await self._complete_job(job, result)

    async def _complete_job(
        self,
        job: Job,
        result: ExecutionResult,
    ) -> CompleteOutcome | None:
        """
        Store the job's outcome, retrying while the store is unreachable.

        Returns:
            The completion outcome, or None if the job was left stuck.
        """
        for attempt in range(1, self.complete_max_retries + 1):
            try:
                return await self.engine.complete(job.id, result.status, result.output)
            except StoreUnavailableError as e:
                logger.warning(
                    "Store unavailable while completing job",
                    extra={
                        "attempt": attempt,
                        "max_attempts": self.complete_max_retries,
                        "error": str(e),
                    },
                )
                if attempt < self.complete_max_retries:
                    await asyncio.sleep(self.complete_retry_backoff * attempt)

        self._metrics.record_stuck_job()
        logger.error(
            "Job stuck in running state: completion could not be stored",
            extra={"status": result.status, "exit_code": result.exit_code},
        )
        return None


async def run_async(
    concurrency: int | None = None,
    poll_interval: float | None = None,
) -> None:
    """Run the worker asynchronously."""
    setup_logging()
    setup_tracing()

    async with open_runtime() as runtime:
        worker = Worker(
            runtime.engine,
            concurrency=concurrency,
            poll_interval=poll_interval,
        )

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda: asyncio.create_task(worker.stop()),
            )

        await worker.start()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
