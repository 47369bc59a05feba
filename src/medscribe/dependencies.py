"""Dependency injection configuration for the worker and the API."""

from functools import lru_cache

import assemblyai as aai
import pika
import redis.asyncio as aioredis
from google import genai

from medscribe.config import AppConfig, load_config
from medscribe.domain import (
    AudioOptimizer,
    ResultFormatter,
    Summarizer,
    TranscriptBuilder,
)
from medscribe.handlers import TranscriptionJobHandler
from medscribe.infrastructure import (
    AssemblyAITranscriber,
    CacheProgressReporter,
    FilesystemBlobStoreFactory,
    FilesystemStagingArea,
    GeminiLLMService,
    MinioBlobStoreFactory,
    MinioStagingArea,
    RabbitMQJobPublisher,
    RabbitMQJobQueue,
    RedisCacheService,
)
from medscribe.infrastructure.interfaces import (
    BlobStoreFactory,
    CacheService,
    JobPublisher,
    ProgressReporter,
    StagingArea,
)
from medscribe.logging import setup_logging
from medscribe.repositories import RecordingRepositoryFactory
from medscribe.services import RecordingService
from medscribe.worker import Worker

logger = setup_logging()


@lru_cache
def get_config() -> AppConfig:
    return load_config()


@lru_cache
def get_cache() -> CacheService:
    config = get_config().redis
    client = aioredis.Redis(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        decode_responses=True,
    )
    return RedisCacheService(client, config.results_ttl_seconds)


@lru_cache
def get_blob_store_factory() -> BlobStoreFactory:
    config = get_config()
    if config.storage.backend == "filesystem":
        logger.info(
            "Using filesystem storage", extra={"root": str(config.storage.filesystem_root)}
        )
        return FilesystemBlobStoreFactory(config.storage.filesystem_root)

    factory = MinioBlobStoreFactory(config.minio)
    factory.ensure_bucket_exists()
    return factory


@lru_cache
def get_staging_area() -> StagingArea:
    config = get_config()
    if config.storage.backend == "filesystem":
        return FilesystemStagingArea(config.storage.staging_dir)

    factory = MinioBlobStoreFactory(config.minio)
    factory.ensure_bucket_exists(config.minio.staging_bucket_name)
    return MinioStagingArea(
        factory.service_client(),
        config.minio.staging_bucket_name,
        config.minio.presigned_url_ttl_seconds,
    )


@lru_cache
def get_progress_reporter() -> ProgressReporter:
    return CacheProgressReporter(get_cache(), get_config().redis.progress_ttl_seconds)


@lru_cache
def get_repository_factory() -> RecordingRepositoryFactory:
    config = get_config()
    return RecordingRepositoryFactory(
        get_blob_store_factory(),
        get_cache(),
        config.storage.root_folder,
        config.redis,
    )


def _rabbitmq_parameters() -> pika.ConnectionParameters:
    config = get_config().rabbitmq
    credentials = pika.PlainCredentials(config.user, config.password)
    return pika.ConnectionParameters(
        host=config.host,
        credentials=credentials,
        heartbeat=0,
    )


@lru_cache
def get_publisher() -> JobPublisher:
    return RabbitMQJobPublisher(
        lambda: pika.BlockingConnection(_rabbitmq_parameters()),
        get_config().rabbitmq,
    )


@lru_cache
def get_recording_service() -> RecordingService:
    return RecordingService(
        get_repository_factory(),
        get_cache(),
        get_publisher(),
        get_progress_reporter(),
        get_config().redis,
    )


def get_handler() -> TranscriptionJobHandler:
    config = get_config()

    aai.settings.api_key = config.assemblyai.api_key
    transcriber = AssemblyAITranscriber(aai.Transcriber(), config.assemblyai)

    llm = GeminiLLMService(genai.Client(api_key=config.gemini.api_key), config.gemini)

    return TranscriptionJobHandler(
        repositories=get_repository_factory(),
        cache=get_cache(),
        staging=get_staging_area(),
        transcription_service=transcriber,
        transcript_builder=TranscriptBuilder(config.speakers),
        summarizer=Summarizer(llm, config.summary),
        optimizer=AudioOptimizer(config.audio),
        formatter=ResultFormatter(config.speakers),
        progress=get_progress_reporter(),
        redis_config=config.redis,
    )


def get_worker() -> Worker:
    """Returns the configured worker instance."""
    config = get_config()
    connection = pika.BlockingConnection(_rabbitmq_parameters())
    queue = RabbitMQJobQueue(connection, config.rabbitmq)
    queue.setup()
    return Worker(queue, get_handler(), config.rabbitmq.queue_config)
