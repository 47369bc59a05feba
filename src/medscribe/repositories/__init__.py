"""Repository exports."""

from .recording_repository import (
    RecordingRepository,
    RecordingRepositoryFactory,
    chunk_counter_key,
    result_version,
    results_cache_key,
)

__all__ = [
    "RecordingRepository",
    "RecordingRepositoryFactory",
    "chunk_counter_key",
    "result_version",
    "results_cache_key",
]
