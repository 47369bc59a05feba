"""Infrastructure layer exports."""

from .assemblyai_transcriber import AssemblyAITranscriber
from .cache_progress import CacheProgressReporter
from .filesystem_storage import (
    FilesystemBlobStore,
    FilesystemBlobStoreFactory,
    FilesystemStagingArea,
)
from .gemini_llm import GeminiLLMService
from .minio_storage import MinioBlobStore, MinioBlobStoreFactory, MinioStagingArea
from .rabbitmq_queue import RabbitMQJobPublisher, RabbitMQJobQueue
from .redis_cache import RedisCacheService

__all__ = [
    "AssemblyAITranscriber",
    "CacheProgressReporter",
    "FilesystemBlobStore",
    "FilesystemBlobStoreFactory",
    "FilesystemStagingArea",
    "GeminiLLMService",
    "MinioBlobStore",
    "MinioBlobStoreFactory",
    "MinioStagingArea",
    "RabbitMQJobPublisher",
    "RabbitMQJobQueue",
    "RedisCacheService",
]
