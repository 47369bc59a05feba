from unittest.mock import MagicMock

import pytest
from pika.exceptions import AMQPConnectionError

from medscribe.config import QueueConfig, RabbitMQConfig
from medscribe.domain import Capability, TranscriptionJob
from medscribe.exceptions import EventPublishError
from medscribe.infrastructure import RabbitMQJobPublisher, RabbitMQJobQueue


@pytest.fixture
def config():
    return RabbitMQConfig(
        host="rabbitmq",
        user="guest",
        password="guest",
        queue_config=QueueConfig(max_attempts=3, backoff_base_seconds=5, max_concurrency=4),
    )


@pytest.fixture
def job():
    return TranscriptionJob(recording_id="rec-1", capability=Capability(access_token="t"))


class TestRabbitMQJobPublisher:
    @pytest.fixture
    def connection(self):
        connection = MagicMock()
        connection.is_closed = False
        return connection

    @pytest.fixture
    def publisher(self, connection, config):
        return RabbitMQJobPublisher(lambda: connection, config)

    def test_publishes_to_events_exchange(self, publisher, connection, job):
        assert publisher.enqueue(job) == job.job_id

        channel = connection.channel.return_value
        channel.exchange_declare.assert_called_once_with(
            exchange="events", exchange_type="topic", durable=True
        )
        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["exchange"] == "events"
        assert kwargs["routing_key"] == "recording.stopped"
        assert TranscriptionJob.model_validate_json(kwargs["body"]).recording_id == "rec-1"
        assert kwargs["properties"].headers == {"x-attempt": 1}
        assert kwargs["properties"].delivery_mode == 2

    def test_reconnects_once_after_connection_loss(self, config, job):
        broken = MagicMock(is_closed=False)
        broken.channel.return_value.basic_publish.side_effect = AMQPConnectionError()
        healthy = MagicMock(is_closed=False)
        connections = iter([broken, healthy])
        publisher = RabbitMQJobPublisher(lambda: next(connections), config)

        publisher.enqueue(job)

        healthy.channel.return_value.basic_publish.assert_called_once()

    def test_failure_raises_publish_error(self, publisher, connection, job):
        connection.channel.return_value.basic_publish.side_effect = RuntimeError("closed")

        with pytest.raises(EventPublishError):
            publisher.enqueue(job)


class TestRabbitMQJobQueue:
    @pytest.fixture
    def connection(self):
        connection = MagicMock()
        # Run thread-handoff callbacks inline
        connection.add_callback_threadsafe.side_effect = lambda callback: callback()
        return connection

    @pytest.fixture
    def channel(self, connection):
        return connection.channel.return_value

    @pytest.fixture
    def queue(self, connection, config):
        return RabbitMQJobQueue(connection, config)

    def test_setup_declares_retry_levels(self, queue, channel):
        queue.setup()

        declared = {
            call.kwargs["queue"]: call.kwargs.get("arguments")
            for call in channel.queue_declare.call_args_list
        }
        assert declared["transcription_queue"]["x-delivery-limit"] == 3
        assert declared["transcription_queue.retry.1"]["x-message-ttl"] == 5000
        assert declared["transcription_queue.retry.2"]["x-message-ttl"] == 10000
        assert declared["transcription_queue.retry.2"]["x-dead-letter-exchange"] == "events"
        assert "transcription_queue.retry.3" not in declared
        channel.basic_qos.assert_called_once_with(prefetch_count=4)

    def test_schedule_retry_publishes_next_attempt_then_acks(self, queue, channel):
        queue.schedule_retry(b"{}", 1, 42)

        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["exchange"] == ""
        assert kwargs["routing_key"] == "transcription_queue.retry.1"
        assert kwargs["properties"].headers == {"x-attempt": 2}
        channel.basic_ack.assert_called_once_with(delivery_tag=42)

    def test_acknowledge_and_dead_letter(self, queue, channel):
        queue.acknowledge(1)
        queue.dead_letter(2)

        channel.basic_ack.assert_called_once_with(delivery_tag=1)
        channel.basic_nack.assert_called_once_with(delivery_tag=2, requeue=False)

    def test_consume_passes_headers(self, queue, channel):
        received = []

        queue.consume(lambda body, tag, headers: received.append((body, tag, headers)))

        on_message = channel.basic_consume.call_args.kwargs["on_message_callback"]
        on_message(channel, MagicMock(delivery_tag=9), MagicMock(headers={"x-attempt": 2}), b"body")

        assert received == [(b"body", 9, {"x-attempt": 2})]
        channel.start_consuming.assert_called_once()
