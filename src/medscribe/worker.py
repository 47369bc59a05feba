"""Worker that handles queue message consumption and orchestration."""

import asyncio
import threading
from concurrent.futures import Future
from functools import partial
from typing import Any

from pydantic import ValidationError

from medscribe.config import QueueConfig
from medscribe.domain import TranscriptionJob
from medscribe.exceptions import JobAlreadyRunningError, error_kind, is_retryable
from medscribe.handlers import TranscriptionJobHandler
from medscribe.infrastructure.interfaces import JobQueue
from medscribe.logging import setup_logging

logger = setup_logging()

ATTEMPT_HEADER = "x-attempt"


def attempt_from_headers(headers: dict[str, Any] | None) -> int:
    """Reads the attempt number of a delivery; first deliveries carry none."""
    if not headers:
        return 1
    try:
        return max(1, int(headers.get(ATTEMPT_HEADER, 1)))
    except (TypeError, ValueError):
        return 1


class Worker:
    """
    Consumes jobs from the queue and runs them on a bounded pool.

    The queue client blocks the main thread while an asyncio loop in a
    background thread runs the pipelines, at most ``max_concurrency`` at once.
    """

    def __init__(self, queue: JobQueue, handler: TranscriptionJobHandler, config: QueueConfig):
        self._queue = queue
        self._handler = handler
        self._config = config
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None

    def start(self) -> None:
        """Starts the pipeline loop and consumes messages until stopped."""
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._run_loop, name="pipeline-loop", daemon=True
        )
        self._loop_thread.start()

        logger.info(
            "Worker initialized, starting message consumption",
            extra={
                "max_concurrency": self._config.max_concurrency,
                "max_attempts": self._config.max_attempts,
            },
        )
        try:
            self._queue.consume(self._on_message)
        finally:
            self.shutdown()

    def stop(self) -> None:
        self._queue.stop()

    def shutdown(self) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._loop_thread is not None:
            self._loop_thread.join(timeout=10)
        logger.info("Worker stopped")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _on_message(
        self, body: bytes, delivery_tag: int, headers: dict[str, Any] | None
    ) -> None:
        """Callback for each received message, called on the queue's thread."""
        future = asyncio.run_coroutine_threadsafe(
            self.handle_delivery(body, delivery_tag, headers), self._loop
        )
        future.add_done_callback(partial(self._log_unhandled, delivery_tag))

    def _log_unhandled(self, delivery_tag: int, future: Future) -> None:
        if future.cancelled():
            logger.warning("Delivery handling cancelled", extra={"delivery_tag": delivery_tag})
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "Delivery handling crashed, message left unsettled",
                extra={"delivery_tag": delivery_tag, "error": str(error)},
                exc_info=error,
            )

    async def handle_delivery(
        self, body: bytes, delivery_tag: int, headers: dict[str, Any] | None
    ) -> None:
        """
        Runs one delivery to completion and settles it on the queue.

        Invalid payloads are dead-lettered at once. Failures are retried
        with backoff while they are retryable and attempts remain; otherwise
        the recording is marked failed and the job dead-lettered.
        """
        attempt = attempt_from_headers(headers)

        try:
            job = TranscriptionJob.model_validate_json(body)
        except ValidationError as e:
            logger.exception("Invalid message format", extra={"error": str(e)})
            self._queue.dead_letter(delivery_tag)
            return

        logger.info(
            "Message received",
            extra={
                "recording_id": job.recording_id,
                "job_id": job.job_id,
                "attempt": attempt,
                "max_attempts": self._config.max_attempts,
            },
        )

        async with self._semaphore:
            try:
                result = await self._handler.process(job)
            except Exception as e:
                await self._handle_failure(job, body, delivery_tag, attempt, e)
                return

        self._queue.acknowledge(delivery_tag)
        logger.info(
            "Message processed successfully",
            extra={
                "recording_id": job.recording_id,
                "result_version": result.result_version,
                "attempt": attempt,
            },
        )

    async def _handle_failure(
        self,
        job: TranscriptionJob,
        body: bytes,
        delivery_tag: int,
        attempt: int,
        error: Exception,
    ) -> None:
        context = {
            "recording_id": job.recording_id,
            "job_id": job.job_id,
            "attempt": attempt,
            "error_kind": error_kind(error).value,
            "error": str(error),
        }

        if is_retryable(error) and attempt < self._config.max_attempts:
            logger.warning(
                "Message processing failed, retry scheduled",
                extra={
                    **context,
                    "delay_seconds": self._config.retry_delay_seconds(attempt),
                },
            )
            if not isinstance(error, JobAlreadyRunningError):
                await self._handler.mark_retrying(job, error)
            self._queue.schedule_retry(body, attempt, delivery_tag)
            return

        logger.error("Message processing failed permanently", extra=context)
        if isinstance(error, JobAlreadyRunningError):
            await self._settle_contended(job, error)
        else:
            await self._handler.mark_failed(job, error)
        self._queue.dead_letter(delivery_tag)

    async def _settle_contended(self, job: TranscriptionJob, error: Exception) -> None:
        """Fails the recording only when the lock holder turns out to be gone."""
        try:
            await self._handler.fail_if_abandoned(job, error)
        except Exception:
            logger.exception(
                "Failed to settle contended job",
                extra={"recording_id": job.recording_id, "job_id": job.job_id},
            )
