"""Infrastructure interface exports."""

from .blob_store import BlobStore, BlobStoreFactory, StagingArea
from .cache_service import CacheService
from .job_queue import DeliveryCallback, JobPublisher, JobQueue
from .llm_service import LLMService
from .progress_reporter import ProgressReporter
from .transcription_service import TranscriptionService

__all__ = [
    "BlobStore",
    "BlobStoreFactory",
    "CacheService",
    "DeliveryCallback",
    "JobPublisher",
    "JobQueue",
    "LLMService",
    "ProgressReporter",
    "StagingArea",
    "TranscriptionService",
]
