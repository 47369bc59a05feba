"""Abstract interfaces for the transcription job queue."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from medscribe.domain.models import TranscriptionJob

DeliveryCallback = Callable[[bytes, int, dict[str, Any] | None], None]


class JobPublisher(ABC):
    """Submits transcription jobs."""

    @abstractmethod
    def enqueue(self, job: TranscriptionJob) -> str:
        """
        Publishes a job for the worker pool.

        Args:
            job: The job to run.

        Returns:
            The job identifier.

        Raises:
            EventPublishError: If the broker does not accept the job.
        """
        pass


class JobQueue(ABC):
    """
    Durable job queue consumed by the worker.

    ``acknowledge``, ``schedule_retry`` and ``dead_letter`` may be called
    from any thread.
    """

    @abstractmethod
    def setup(self) -> None:
        """Declares queues, exchanges and bindings."""
        pass

    @abstractmethod
    def consume(self, callback: DeliveryCallback) -> None:
        """
        Blocks delivering jobs to ``callback`` until ``stop`` is called.

        Args:
            callback: Called with (body, delivery_tag, headers) per delivery.
        """
        pass

    @abstractmethod
    def acknowledge(self, delivery_tag: int) -> None:
        """Removes a finished job from the queue."""
        pass

    @abstractmethod
    def schedule_retry(self, body: bytes, failed_attempt: int, delivery_tag: int) -> None:
        """
        Redelivers a job after the backoff delay for ``failed_attempt``.

        The redelivered job carries attempt number ``failed_attempt + 1`` and
        the original delivery is acknowledged.
        """
        pass

    @abstractmethod
    def dead_letter(self, delivery_tag: int) -> None:
        """Moves a job to the dead-letter queue for inspection."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stops consuming."""
        pass
