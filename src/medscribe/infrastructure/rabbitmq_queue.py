"""RabbitMQ implementations of the job publisher and job queue."""

import functools
import threading
from collections.abc import Callable

import pika
from pika.adapters.blocking_connection import BlockingConnection
from pika.exceptions import AMQPConnectionError, AMQPError

from medscribe.config import QueueConfig, RabbitMQConfig
from medscribe.domain.models import TranscriptionJob
from medscribe.exceptions import EventPublishError
from medscribe.logging import setup_logging

from .interfaces import DeliveryCallback, JobPublisher, JobQueue

logger = setup_logging()

ATTEMPT_HEADER = "x-attempt"
PERSISTENT_DELIVERY_MODE = 2


def job_properties(job_id: str | None, attempt: int) -> pika.BasicProperties:
    return pika.BasicProperties(
        content_type="application/json",
        delivery_mode=PERSISTENT_DELIVERY_MODE,
        message_id=job_id,
        headers={ATTEMPT_HEADER: attempt},
    )


class RabbitMQJobPublisher(JobPublisher):
    """
    Publishes jobs to the events exchange.

    Blocking pika channels are not thread-safe, so publishes are serialized
    and the connection is re-opened once if the broker dropped it.
    """

    def __init__(
        self,
        connection_factory: Callable[[], BlockingConnection],
        config: RabbitMQConfig,
    ):
        self._connection_factory = connection_factory
        self._config = config
        self._lock = threading.Lock()
        self._connection: BlockingConnection | None = None
        self._channel = None

    def _ensure_channel(self):
        if self._connection is None or self._connection.is_closed:
            self._connection = self._connection_factory()
            self._channel = self._connection.channel()
            self._channel.exchange_declare(
                exchange=self._config.exchange_name,
                exchange_type="topic",
                durable=True,
            )
        return self._channel

    def enqueue(self, job: TranscriptionJob) -> str:
        """
        Publishes a transcription job.

        Args:
            job: The job to run.

        Returns:
            The job identifier.

        Raises:
            EventPublishError: If publishing fails.
        """
        routing_key = self._config.queue_config.expected_routing_key
        body = job.model_dump_json()

        with self._lock:
            try:
                try:
                    self._publish(routing_key, body, job.job_id)
                except AMQPConnectionError:
                    logger.warning("RabbitMQ connection lost, reconnecting")
                    self._connection = None
                    self._publish(routing_key, body, job.job_id)
            except Exception as e:
                logger.exception(
                    "Failed to publish job",
                    extra={"routing_key": routing_key, "recording_id": job.recording_id},
                )
                raise EventPublishError(routing_key, e) from e

        logger.info(
            "Job published",
            extra={
                "exchange": self._config.exchange_name,
                "routing_key": routing_key,
                "recording_id": job.recording_id,
                "job_id": job.job_id,
            },
        )
        return job.job_id

    def _publish(self, routing_key: str, body: str, job_id: str) -> None:
        self._ensure_channel().basic_publish(
            exchange=self._config.exchange_name,
            routing_key=routing_key,
            body=body,
            properties=job_properties(job_id, attempt=1),
        )

    def close(self) -> None:
        with self._lock:
            if self._connection is not None and self._connection.is_open:
                self._connection.close()
            self._connection = None


class RabbitMQJobQueue(JobQueue):
    """
    Job queue consumed by the worker.

    Consumption runs on the thread that owns the connection. Acks, nacks and
    retry publishes requested from other threads are handed to that thread
    with ``add_callback_threadsafe``.
    """

    def __init__(self, connection: BlockingConnection, config: RabbitMQConfig):
        self._connection = connection
        self._channel = connection.channel()
        self._config = config

    def setup(self) -> None:
        """Sets up exchanges, queues, and bindings for the worker."""
        queue_config: QueueConfig = self._config.queue_config

        # Dead letter exchange and queue
        self._channel.exchange_declare(
            exchange=queue_config.dlq_exchange_name,
            exchange_type="direct",
            durable=True,
        )
        self._channel.queue_declare(queue=queue_config.dlq_name, durable=True)
        self._channel.queue_bind(
            queue=queue_config.dlq_name,
            exchange=queue_config.dlq_exchange_name,
            routing_key=queue_config.dlq_routing_key,
        )

        # Main exchange
        self._channel.exchange_declare(
            exchange=self._config.exchange_name,
            exchange_type="topic",
            durable=True,
        )

        # Work queue with dead letter configuration
        self._channel.queue_declare(
            queue=queue_config.name,
            durable=True,
            arguments={
                "x-queue-type": queue_config.queue_type,
                "x-delivery-limit": queue_config.max_delivery_count,
                "x-dead-letter-exchange": queue_config.dlq_exchange_name,
                "x-dead-letter-routing-key": queue_config.dlq_routing_key,
            },
        )
        self._channel.queue_bind(
            queue=queue_config.name,
            exchange=self._config.exchange_name,
            routing_key=queue_config.expected_routing_key,
        )

        # One delay queue per retry level; expired jobs return to the work queue
        for failed_attempt in range(1, queue_config.max_attempts):
            self._channel.queue_declare(
                queue=queue_config.retry_queue_name(failed_attempt),
                durable=True,
                arguments={
                    "x-message-ttl": int(
                        queue_config.retry_delay_seconds(failed_attempt) * 1000
                    ),
                    "x-dead-letter-exchange": self._config.exchange_name,
                    "x-dead-letter-routing-key": queue_config.expected_routing_key,
                },
            )

        self._channel.basic_qos(prefetch_count=queue_config.max_concurrency)

        logger.info(
            "Queue infrastructure ready",
            extra={
                "queue": queue_config.name,
                "exchange": self._config.exchange_name,
                "retry_levels": queue_config.max_attempts - 1,
            },
        )

    def consume(self, callback: DeliveryCallback) -> None:
        """
        Starts consuming messages from the work queue.

        Args:
            callback: Function called for each message with (body, delivery_tag, headers).
        """

        def on_message(ch, method, properties, body):
            headers = properties.headers if properties else None
            callback(body, method.delivery_tag, headers)

        self._channel.basic_consume(
            queue=self._config.queue_config.name,
            on_message_callback=on_message,
        )
        logger.info("Started consuming", extra={"queue": self._config.queue_config.name})
        self._channel.start_consuming()

    def _on_connection_thread(self, action: Callable[[], None]) -> None:
        try:
            self._connection.add_callback_threadsafe(action)
        except AMQPError:
            logger.exception("RabbitMQ connection unavailable, delivery will be redelivered")

    def acknowledge(self, delivery_tag: int) -> None:
        """Acknowledges successful processing of a message."""
        self._on_connection_thread(
            functools.partial(self._channel.basic_ack, delivery_tag=delivery_tag)
        )

    def schedule_retry(self, body: bytes, failed_attempt: int, delivery_tag: int) -> None:
        """Parks the job in the delay queue for its attempt, then acks the original."""
        queue_config = self._config.queue_config
        retry_queue = queue_config.retry_queue_name(failed_attempt)

        def publish_and_ack():
            self._channel.basic_publish(
                exchange="",
                routing_key=retry_queue,
                body=body,
                properties=job_properties(None, attempt=failed_attempt + 1),
            )
            self._channel.basic_ack(delivery_tag=delivery_tag)
            logger.info(
                "Job scheduled for retry",
                extra={
                    "retry_queue": retry_queue,
                    "next_attempt": failed_attempt + 1,
                    "delay_seconds": queue_config.retry_delay_seconds(failed_attempt),
                },
            )

        self._on_connection_thread(publish_and_ack)

    def dead_letter(self, delivery_tag: int) -> None:
        """Rejects a message without requeue, routing it to the dead-letter queue."""
        self._on_connection_thread(
            functools.partial(
                self._channel.basic_nack, delivery_tag=delivery_tag, requeue=False
            )
        )

    def stop(self) -> None:
        self._on_connection_thread(self._channel.stop_consuming)
