"""Application configuration loaded from environment variables."""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel


class MinioConfig(BaseModel, frozen=True):
    """MinIO connection configuration."""

    endpoint: str
    user: str
    password: str
    bucket_name: str = "recordings"
    staging_bucket_name: str = "transcription-staging"
    secure: bool = False
    sts_endpoint: str | None = None
    presigned_url_ttl_seconds: int = 3600


class StorageConfig(BaseModel, frozen=True):
    """Blob store selection and layout."""

    backend: Literal["minio", "filesystem"] = "minio"
    root_folder: str = "medical-recordings"
    filesystem_root: Path = Path("/var/lib/medscribe/store")
    staging_dir: Path = Path("/var/lib/medscribe/staging")


class RedisConfig(BaseModel, frozen=True):
    """Redis connection configuration."""

    host: str
    port: int = 6379
    db: int = 0
    password: str | None = None
    results_ttl_seconds: int = 3600
    progress_ttl_seconds: int = 86400
    lock_ttl_seconds: int = 30
    lock_wait_seconds: float = 5.0
    job_lock_ttl_seconds: int = 60


class QueueConfig(BaseModel, frozen=True):
    """RabbitMQ queue configuration."""

    name: str = "transcription_queue"
    queue_type: str = "quorum"
    max_delivery_count: int = 3
    expected_routing_key: str = "recording.stopped"
    dlq_name: str = "dlq_transcription"
    dlq_exchange_name: str = "dead_letter_exchange"
    dlq_routing_key: str = "recording.transcription.failed"
    max_attempts: int = 3
    backoff_base_seconds: float = 5.0
    max_concurrency: int = 5

    def retry_queue_name(self, failed_attempt: int) -> str:
        """Names the delay queue that holds a job after its n-th failure."""
        return f"{self.name}.retry.{failed_attempt}"

    def retry_delay_seconds(self, failed_attempt: int) -> float:
        """Exponential backoff: base, 2*base, 4*base, ..."""
        return self.backoff_base_seconds * 2 ** (failed_attempt - 1)


class RabbitMQConfig(BaseModel, frozen=True):
    """RabbitMQ connection configuration."""

    host: str
    user: str
    password: str
    exchange_name: str = "events"
    queue_config: QueueConfig = QueueConfig()


class AssemblyAIConfig(BaseModel, frozen=True):
    """AssemblyAI API configuration."""

    api_key: str
    speaker_labels: bool = True
    speakers_expected: int = 2
    language_code: str = "en_us"
    boost_param: str = "high"
    poll_interval_seconds: float = 5.0
    operation_timeout_seconds: float = 1800.0


class GeminiConfig(BaseModel, frozen=True):
    """Gemini LLM configuration."""

    api_key: str
    model_name: str = "gemini-2.5-flash"
    temperature: float = 0.2
    top_p: float = 0.8
    top_k: int = 40
    max_output_tokens: int = 1024


class AudioConfig(BaseModel, frozen=True):
    """Parameters of the transcription audio filter chain."""

    sample_rate: int = 16000
    channels: int = 1
    highpass_hz: int = 200
    lowpass_hz: int = 3000
    volume: float = 1.5
    silence_threshold_db: int = -50
    codec: str = "flac"


class SpeakerConfig(BaseModel, frozen=True):
    """
    Policy for naming diarized speakers.

    The first speaker tag heard gets ``primary_label``; every other tag gets
    ``secondary_label``. This is a heuristic: it assumes the clinician opens
    the consultation.
    """

    primary_label: str = "Doctor"
    secondary_label: str = "Patient"


class SummarySection(BaseModel, frozen=True):
    """A fallback summary section and the keywords that select sentences for it."""

    title: str
    keywords: tuple[str, ...]


DEFAULT_FALLBACK_SECTIONS = (
    SummarySection(
        title="Chief Complaint",
        keywords=("chief complaint", "reason for visit", "what brings you"),
    ),
    SummarySection(
        title="Medications",
        keywords=("medication", "prescribed", "dose", "milligram"),
    ),
    SummarySection(
        title="Assessment",
        keywords=("assessment", "diagnosis", "condition"),
    ),
    SummarySection(
        title="Plan",
        keywords=("plan", "recommendation", "follow up", "prescription"),
    ),
)


class SummaryConfig(BaseModel, frozen=True):
    """Rule-based fallback summarizer configuration."""

    fallback_sections: tuple[SummarySection, ...] = DEFAULT_FALLBACK_SECTIONS
    min_sentence_length: int = 10


class AppConfig(BaseModel, frozen=True):
    """Root application configuration."""

    minio: MinioConfig
    storage: StorageConfig
    redis: RedisConfig
    rabbitmq: RabbitMQConfig
    assemblyai: AssemblyAIConfig
    gemini: GeminiConfig
    audio: AudioConfig = AudioConfig()
    speakers: SpeakerConfig = SpeakerConfig()
    summary: SummaryConfig = SummaryConfig()


def load_config() -> AppConfig:
    """Loads configuration from environment variables."""
    return AppConfig(
        minio=MinioConfig(
            endpoint=os.getenv("MINIO_ENDPOINT", "minio:9000"),
            user=os.getenv("MINIO_USER", ""),
            password=os.getenv("MINIO_PASSWORD", ""),
            bucket_name=os.getenv("MINIO_BUCKET", "recordings"),
            staging_bucket_name=os.getenv("MINIO_STAGING_BUCKET", "transcription-staging"),
            secure=os.getenv("MINIO_SECURE", "false").lower() == "true",
            sts_endpoint=os.getenv("MINIO_STS_ENDPOINT") or None,
        ),
        storage=StorageConfig(
            backend=os.getenv("STORAGE_BACKEND", "minio"),
            root_folder=os.getenv("STORAGE_ROOT_FOLDER", "medical-recordings"),
            filesystem_root=Path(os.getenv("STORAGE_FILESYSTEM_ROOT", "/var/lib/medscribe/store")),
            staging_dir=Path(os.getenv("STORAGE_STAGING_DIR", "/var/lib/medscribe/staging")),
        ),
        redis=RedisConfig(
            host=os.getenv("REDIS_HOST", "redis"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            db=int(os.getenv("REDIS_DB", "0")),
            password=os.getenv("REDIS_PASSWORD") or None,
            results_ttl_seconds=int(os.getenv("REDIS_RESULTS_TTL_SECONDS", "3600")),
            job_lock_ttl_seconds=int(os.getenv("REDIS_JOB_LOCK_TTL_SECONDS", "60")),
        ),
        rabbitmq=RabbitMQConfig(
            host=os.getenv("RABBITMQ_HOST", "rabbitmq"),
            user=os.getenv("RABBITMQ_USER", ""),
            password=os.getenv("RABBITMQ_PASSWORD", ""),
            queue_config=QueueConfig(
                max_attempts=int(os.getenv("QUEUE_MAX_ATTEMPTS", "3")),
                backoff_base_seconds=float(os.getenv("QUEUE_BACKOFF_BASE_SECONDS", "5")),
                max_concurrency=int(os.getenv("QUEUE_MAX_CONCURRENCY", "5")),
            ),
        ),
        assemblyai=AssemblyAIConfig(
            api_key=os.getenv("ASSEMBLYAI_API_KEY", ""),
            operation_timeout_seconds=float(
                os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", "1800")
            ),
        ),
        gemini=GeminiConfig(
            api_key=os.getenv("GEMINI_API_KEY", ""),
            model_name=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        ),
        speakers=SpeakerConfig(
            primary_label=os.getenv("SPEAKER_PRIMARY_LABEL", "Doctor"),
            secondary_label=os.getenv("SPEAKER_SECONDARY_LABEL", "Patient"),
        ),
    )
