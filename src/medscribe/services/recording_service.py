"""Caller-facing recording operations."""

import asyncio
import uuid

from medscribe.config import RedisConfig
from medscribe.domain import (
    AudioChunk,
    Capability,
    ChunkAck,
    JobAccepted,
    PatientInfo,
    RecordingFilter,
    RecordingMetadata,
    RecordingProgress,
    RecordingResults,
    RecordingStatus,
    SessionInfo,
    TranscriptionJob,
)
from medscribe.exceptions import (
    EventPublishError,
    RecordingStateError,
    ResultsNotReadyError,
)
from medscribe.infrastructure.interfaces import (
    CacheService,
    JobPublisher,
    ProgressReporter,
)
from medscribe.logging import setup_logging
from medscribe.repositories import (
    RecordingRepositoryFactory,
    chunk_counter_key,
    results_cache_key,
)

logger = setup_logging()

ACCEPTS_CHUNKS = {RecordingStatus.INITIALIZED, RecordingStatus.RECORDING}
IN_PIPELINE = {RecordingStatus.QUEUED, RecordingStatus.PROCESSING}


def new_recording_id() -> str:
    return f"rec-{uuid.uuid4()}"


class RecordingService:
    """Starts, feeds, stops, reads and deletes recordings on behalf of their owner."""

    def __init__(
        self,
        repositories: RecordingRepositoryFactory,
        cache: CacheService,
        publisher: JobPublisher,
        progress: ProgressReporter,
        redis_config: RedisConfig,
    ):
        self._repositories = repositories
        self._cache = cache
        self._publisher = publisher
        self._progress = progress
        self._redis_config = redis_config

    async def start_recording(
        self, capability: Capability, patient_info: PatientInfo | None = None
    ) -> RecordingMetadata:
        """
        Creates a recording folder and its metadata.

        Returns:
            The new recording's metadata, status ``initialized``.

        Raises:
            FolderLockTimeoutError: If folder creation is contended for too long.
            StorageUploadError: If the folder or metadata cannot be written.
        """
        repository = self._repositories.for_capability(capability)
        metadata = await repository.create(
            RecordingMetadata(recording_id=new_recording_id(), patient_info=patient_info)
        )
        logger.info("Recording started", extra={"recording_id": metadata.recording_id})
        return metadata

    async def upload_chunk(
        self,
        capability: Capability,
        recording_id: str,
        chunk_number: int,
        data: bytes,
        content_type: str = "audio/wav",
    ) -> ChunkAck:
        """
        Stores one audio chunk. Chunks may arrive in any order.

        Raises:
            ValueError: If the chunk is empty.
            RecordingNotFoundError: If the recording does not exist.
            RecordingStateError: If the recording was already stopped.
        """
        if not data:
            raise ValueError("Audio chunk is empty")

        repository = self._repositories.for_capability(capability)
        metadata = await repository.load_metadata(recording_id)
        if metadata.status not in ACCEPTS_CHUNKS:
            raise RecordingStateError(recording_id, metadata.status.value, "upload chunks to")

        chunk = AudioChunk(sequence=chunk_number, data=data, content_type=content_type)
        await repository.save_chunk(recording_id, chunk)
        if metadata.status == RecordingStatus.INITIALIZED:
            await repository.set_status(recording_id, RecordingStatus.RECORDING)

        received = await self._cache.increment(
            chunk_counter_key(recording_id), self._redis_config.progress_ttl_seconds
        )
        logger.info(
            "Chunk stored",
            extra={
                "recording_id": recording_id,
                "chunk_number": chunk_number,
                "size": len(data),
            },
        )
        return ChunkAck(
            recording_id=recording_id, chunk_number=chunk_number, chunks_received=received
        )

    async def stop_recording(
        self,
        capability: Capability,
        recording_id: str,
        session_info: SessionInfo | None = None,
    ) -> JobAccepted:
        """
        Marks the recording queued and enqueues its transcription job.

        Stopping a completed or failed recording processes it again and
        produces a new result version.

        Raises:
            RecordingNotFoundError: If the recording does not exist.
            RecordingStateError: If a job for the recording is already pending.
            EventPublishError: If the job cannot be enqueued.
        """
        repository = self._repositories.for_capability(capability)
        metadata = await repository.load_metadata(recording_id)
        if metadata.status in IN_PIPELINE:
            raise RecordingStateError(recording_id, metadata.status.value, "stop")

        await repository.set_status(
            recording_id,
            RecordingStatus.QUEUED,
            session_info=session_info or metadata.session_info,
            error_kind=None,
            error_message=None,
        )
        await self._cache.delete(results_cache_key(recording_id))

        job = TranscriptionJob(
            recording_id=recording_id,
            capability=capability,
            session_info=session_info,
        )
        try:
            await asyncio.to_thread(self._publisher.enqueue, job)
        except EventPublishError:
            await repository.set_status(recording_id, metadata.status)
            raise

        logger.info(
            "Recording stopped, transcription queued",
            extra={"recording_id": recording_id, "job_id": job.job_id},
        )
        return JobAccepted(recording_id=recording_id, job_id=job.job_id)

    async def get_results(
        self, capability: Capability, recording_id: str
    ) -> RecordingResults:
        """
        Returns the latest transcript and summary, from cache when possible.

        The metadata read goes through the caller's store first, so the cache
        never serves results the caller could not read from storage.

        Raises:
            RecordingNotFoundError: If the recording does not exist.
            ResultsNotReadyError: If the recording has not completed.
            UnauthorizedError: If the caller may not read the recording.
        """
        repository = self._repositories.for_capability(capability)
        metadata = await repository.load_metadata(recording_id)
        if metadata.status != RecordingStatus.COMPLETED:
            raise ResultsNotReadyError(recording_id, metadata.status.value)

        async def load_from_storage() -> dict:
            version = metadata.last_result_version
            if version is None:
                versions = await repository.list_result_versions(recording_id)
                if not versions:
                    raise ResultsNotReadyError(recording_id, metadata.status.value)
                version = versions[-1]

            transcript, summary = await repository.load_results(recording_id, version)
            session_info = metadata.session_info
            return RecordingResults(
                recording_id=recording_id,
                transcript=transcript,
                summary=summary,
                patient_info=metadata.effective_patient_info,
                duration=session_info.duration if session_info else None,
                result_version=version,
                completed_at=metadata.completed_at,
            ).model_dump(mode="json")

        cached = await self._cache.get_or_set(
            results_cache_key(recording_id),
            load_from_storage,
            self._redis_config.results_ttl_seconds,
        )
        return RecordingResults.model_validate(cached)

    async def get_status(
        self, capability: Capability, recording_id: str
    ) -> RecordingProgress:
        """Combines stored status with cached progress and chunk count."""
        repository = self._repositories.for_capability(capability)
        metadata = await repository.load_metadata(recording_id)
        progress = await self._progress.get(recording_id) or {}
        chunks = await self._cache.get(chunk_counter_key(recording_id))

        return RecordingProgress(
            recording_id=recording_id,
            status=metadata.status,
            stage=progress.get("stage"),
            progress=progress.get("progress"),
            chunks_received=int(chunks or 0),
            error_kind=metadata.error_kind,
            error_message=metadata.error_message,
        )

    async def get_audio(self, capability: Capability, recording_id: str) -> bytes:
        """
        Returns the combined audio of a stopped recording.

        Raises:
            RecordingStateError: If the recording is still accepting chunks.
            AudioNotFoundError: If the recording has no audio.
        """
        repository = self._repositories.for_capability(capability)
        metadata = await repository.load_metadata(recording_id)
        if metadata.status in ACCEPTS_CHUNKS:
            raise RecordingStateError(recording_id, metadata.status.value, "download audio of")
        return await repository.load_combined_audio(recording_id)

    async def delete_recording(self, capability: Capability, recording_id: str) -> None:
        """
        Deletes a recording's folder and its cache entries.

        Raises:
            RecordingNotFoundError: If the recording does not exist.
        """
        repository = self._repositories.for_capability(capability)
        await repository.delete(recording_id)
        await asyncio.gather(
            self._cache.delete(results_cache_key(recording_id)),
            self._cache.delete(chunk_counter_key(recording_id)),
            self._progress.clear(recording_id),
        )
        logger.info("Recording removed", extra={"recording_id": recording_id})

    async def list_recordings(
        self, capability: Capability, recording_filter: RecordingFilter | None = None
    ) -> list[RecordingMetadata]:
        """Lists recordings newest first, optionally filtered."""
        repository = self._repositories.for_capability(capability)
        recordings = await repository.list_all()
        if recording_filter is not None:
            recordings = [r for r in recordings if recording_filter.matches(r)]
        return sorted(recordings, key=lambda r: r.created_at, reverse=True)
