"""Handler that runs the transcription pipeline for one recording."""

import asyncio
import contextlib
import time
import uuid
from datetime import datetime

from medscribe.config import RedisConfig
from medscribe.domain import (
    MEDICAL_VOCABULARY,
    AudioOptimizer,
    PipelineResult,
    PipelineStage,
    RecordingMetadata,
    RecordingResults,
    RecordingStatus,
    ResultArtifacts,
    ResultFormatter,
    SessionInfo,
    Summarizer,
    TranscriptBuilder,
    TranscriptionJob,
)
from medscribe.domain.models import utc_now
from medscribe.exceptions import (
    JobAbandonedError,
    JobAlreadyRunningError,
    TranscriptionFailedError,
    error_kind,
)
from medscribe.infrastructure.interfaces import (
    CacheService,
    ProgressReporter,
    StagingArea,
    TranscriptionService,
)
from medscribe.logging import setup_logging
from medscribe.repositories import (
    RecordingRepository,
    RecordingRepositoryFactory,
    result_version,
    results_cache_key,
)

logger = setup_logging()


def job_lock_name(recording_id: str) -> str:
    return f"job:{recording_id}"


def effective_session_info(
    job: TranscriptionJob, metadata: RecordingMetadata
) -> SessionInfo:
    """Session details from the stop request, completed with start-time patient info."""
    session_info = job.session_info or metadata.session_info or SessionInfo()
    if session_info.patient_info is None and metadata.patient_info is not None:
        session_info = session_info.model_copy(
            update={"patient_info": metadata.patient_info}
        )
    return session_info


class TranscriptionJobHandler:
    """Orchestrates fetch, optimize, stage, transcribe, summarize, persist, cache and cleanup."""

    def __init__(
        self,
        repositories: RecordingRepositoryFactory,
        cache: CacheService,
        staging: StagingArea,
        transcription_service: TranscriptionService,
        transcript_builder: TranscriptBuilder,
        summarizer: Summarizer,
        optimizer: AudioOptimizer,
        formatter: ResultFormatter,
        progress: ProgressReporter,
        redis_config: RedisConfig,
    ):
        self._repositories = repositories
        self._cache = cache
        self._staging = staging
        self._transcription_service = transcription_service
        self._transcript_builder = transcript_builder
        self._summarizer = summarizer
        self._optimizer = optimizer
        self._formatter = formatter
        self._progress = progress
        self._redis_config = redis_config

    async def process(self, job: TranscriptionJob) -> PipelineResult:
        """
        Runs the pipeline for a job while holding the recording's job lock.

        The lock is a short lease renewed while the pipeline runs, so a
        worker that dies frees the recording within one lease.

        Args:
            job: The job to run.

        Returns:
            PipelineResult with the version of the results written.

        Raises:
            JobAlreadyRunningError: If another worker holds the recording's lock.
            RecordingNotFoundError: If the recording does not exist.
            AudioNotFoundError: If the recording has no audio.
            AudioOptimizationFailedError: If the audio cannot be converted.
            TranscriptionFailedError: If transcription fails or times out.
            StorageUploadError: If results cannot be written.
        """
        recording_id = job.recording_id
        lock_name = job_lock_name(recording_id)
        ttl_seconds = self._redis_config.job_lock_ttl_seconds
        token = await self._cache.acquire_lock(lock_name, ttl_seconds)
        if token is None:
            raise JobAlreadyRunningError(recording_id)

        renewal = asyncio.create_task(self._renew_lease(lock_name, token, ttl_seconds))
        try:
            return await self._run(job)
        finally:
            renewal.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await renewal
            await self._cache.release_lock(lock_name, token)

    async def _renew_lease(self, lock_name: str, token: str, ttl_seconds: int) -> None:
        while True:
            await asyncio.sleep(ttl_seconds / 3)
            if not await self._cache.extend_lock(lock_name, token, ttl_seconds):
                logger.warning("Job lock lease lost", extra={"lock": lock_name})

    async def fail_if_abandoned(self, job: TranscriptionJob, error: BaseException) -> bool:
        """
        Settles a job whose lock was still held on its last attempt.

        Waits out one lease. A live holder keeps renewing it, so the recording
        is left to that holder. A holder that stopped lets it lapse, and the
        recording is then marked failed so it can be stopped again.

        Args:
            job: The contended job.
            error: The contention error of the last attempt.

        Returns:
            True if the recording was marked failed.
        """
        recording_id = job.recording_id
        lock_name = job_lock_name(recording_id)
        ttl_seconds = self._redis_config.job_lock_ttl_seconds
        token = await self._cache.acquire_lock(
            lock_name, ttl_seconds, wait_seconds=ttl_seconds + 1
        )
        if token is None:
            logger.info(
                "Job lock still renewed by its holder, leaving recording alone",
                extra={"recording_id": recording_id, "error": str(error)},
            )
            return False

        try:
            repository = self._repositories.for_capability(job.capability)
            metadata = await repository.load_metadata(recording_id)
            if metadata.status not in (RecordingStatus.QUEUED, RecordingStatus.PROCESSING):
                logger.info(
                    "Job lock holder settled the recording",
                    extra={"recording_id": recording_id, "status": metadata.status.value},
                )
                return False

            logger.warning(
                "Job lock lapsed without a result, marking recording failed",
                extra={"recording_id": recording_id},
            )
            await self.mark_failed(job, JobAbandonedError(recording_id))
        finally:
            await self._cache.release_lock(lock_name, token)
        return True

    async def _run(self, job: TranscriptionJob) -> PipelineResult:
        recording_id = job.recording_id
        repository = self._repositories.for_capability(job.capability)
        stage = PipelineStage.DISPATCHED
        staging_key: str | None = None

        logger.info(
            "Processing recording",
            extra={"recording_id": recording_id, "job_id": job.job_id},
        )

        try:
            await self._progress.report(recording_id, stage)
            metadata = await repository.load_metadata(recording_id)
            session_info = effective_session_info(job, metadata)
            await repository.set_status(
                recording_id,
                RecordingStatus.PROCESSING,
                attempts=metadata.attempts + 1,
                error_kind=None,
                error_message=None,
            )

            audio = await repository.load_combined_audio(recording_id)
            stage = await self._advance(recording_id, PipelineStage.FETCHED)

            optimized = await asyncio.to_thread(
                self._optimizer.optimize, audio, recording_id
            )
            stage = await self._advance(recording_id, PipelineStage.OPTIMIZED)

            staging_key = self._staging_key(recording_id)
            locator = await self._staging.stage(
                staging_key, optimized, self._optimizer.content_type
            )
            stage = await self._advance(recording_id, PipelineStage.UPLOADED)

            transcription = await self._transcription_service.transcribe(
                locator, MEDICAL_VOCABULARY
            )
            transcript = self._transcript_builder.build(transcription)
            if not transcript:
                raise TranscriptionFailedError("Transcription produced an empty transcript")
            stage = await self._advance(recording_id, PipelineStage.TRANSCRIBED)

            summary = await self._summarizer.summarize(
                transcript, session_info, recording_id
            )
            stage = await self._advance(recording_id, PipelineStage.SUMMARIZED)

            generated_at = utc_now()
            version = result_version(generated_at)
            artifacts = ResultArtifacts(
                transcript_text=transcript,
                transcript_html=self._formatter.transcript_html(
                    transcript, session_info, generated_at
                ),
                summary_text=summary.text,
                summary_html=self._formatter.summary_html(
                    summary.text, session_info, generated_at
                ),
            )
            await repository.save_results(recording_id, version, artifacts)
            await repository.set_status(
                recording_id,
                RecordingStatus.COMPLETED,
                session_info=session_info,
                completed_at=generated_at,
                transcript_length=len(transcript),
                summary_available=summary.source != "unavailable",
                summary_source=summary.source,
                last_result_version=version,
            )
            stage = await self._advance(recording_id, PipelineStage.PERSISTED)

            await self._cache_results(
                recording_id, transcript, summary.text, session_info, version, generated_at
            )
            stage = await self._advance(recording_id, PipelineStage.CACHED)

        except Exception as e:
            logger.exception(
                "Pipeline stage failed",
                extra={
                    "recording_id": recording_id,
                    "last_stage": stage.value,
                    "error_kind": error_kind(e).value,
                },
            )
            await self._progress.report(recording_id, PipelineStage.FAILED, stage.value)
            raise
        finally:
            if staging_key is not None:
                await self._discard_staged(recording_id, staging_key)

        await self._cleanup_chunks(repository, recording_id)
        await self._advance(recording_id, PipelineStage.CLEANED_UP)
        await self._advance(recording_id, PipelineStage.DONE)

        logger.info(
            "Recording processed",
            extra={
                "recording_id": recording_id,
                "result_version": version,
                "summary_source": summary.source,
            },
        )
        return PipelineResult(
            recording_id=recording_id,
            result_version=version,
            transcript_length=len(transcript),
            summary_source=summary.source,
        )

    async def _advance(self, recording_id: str, stage: PipelineStage) -> PipelineStage:
        await self._progress.report(recording_id, stage)
        return stage

    def _staging_key(self, recording_id: str) -> str:
        """Unique per attempt, so a retry never reuses a staged object."""
        millis = int(time.time() * 1000)
        suffix = uuid.uuid4().hex[:8]
        return (
            f"transcription-{recording_id}-{millis}-{suffix}"
            f".{self._optimizer.file_extension}"
        )

    async def _cache_results(
        self,
        recording_id: str,
        transcript: str,
        summary: str,
        session_info: SessionInfo,
        version: str,
        completed_at: datetime,
    ) -> None:
        results = RecordingResults(
            recording_id=recording_id,
            transcript=transcript,
            summary=summary,
            patient_info=session_info.patient_info,
            duration=session_info.duration,
            result_version=version,
            completed_at=completed_at,
        )
        stored = await self._cache.set(
            results_cache_key(recording_id),
            results.model_dump(mode="json"),
            self._redis_config.results_ttl_seconds,
        )
        if not stored:
            logger.warning(
                "Results not cached, reads will use storage",
                extra={"recording_id": recording_id},
            )

    async def _discard_staged(self, recording_id: str, staging_key: str) -> None:
        try:
            await self._staging.discard(staging_key)
        except Exception:
            logger.warning(
                "Failed to discard staged audio",
                extra={"recording_id": recording_id, "staging_key": staging_key},
                exc_info=True,
            )

    async def _cleanup_chunks(
        self, repository: RecordingRepository, recording_id: str
    ) -> None:
        try:
            deleted = await repository.delete_chunks(recording_id)
        except Exception:
            logger.warning(
                "Failed to delete chunk folder",
                extra={"recording_id": recording_id},
                exc_info=True,
            )
            return
        if not deleted:
            logger.info("No chunk folder to delete", extra={"recording_id": recording_id})

    async def mark_failed(self, job: TranscriptionJob, error: BaseException) -> None:
        """
        Records a permanent failure on the recording. Never raises.

        Args:
            job: The job that exhausted its attempts or failed fatally.
            error: The last error.
        """
        recording_id = job.recording_id
        try:
            repository = self._repositories.for_capability(job.capability)
            await repository.set_status(
                recording_id,
                RecordingStatus.FAILED,
                failed_at=utc_now(),
                error_kind=error_kind(error).value,
                error_message=str(error),
            )
        except Exception:
            logger.exception(
                "Failed to mark recording as failed",
                extra={"recording_id": recording_id},
            )
        await self._progress.report(recording_id, PipelineStage.FAILED, str(error))

    async def mark_retrying(self, job: TranscriptionJob, error: BaseException) -> None:
        """Puts the recording back to queued with the error of the failed attempt. Never raises."""
        try:
            repository = self._repositories.for_capability(job.capability)
            await repository.set_status(
                job.recording_id,
                RecordingStatus.QUEUED,
                error_kind=error_kind(error).value,
                error_message=str(error),
            )
        except Exception:
            logger.exception(
                "Failed to record retry on recording",
                extra={"recording_id": job.recording_id},
            )
