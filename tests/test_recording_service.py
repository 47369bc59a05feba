import pytest

from conftest import drain
from medscribe.domain import (
    Capability,
    PatientInfo,
    RecordingFilter,
    RecordingStatus,
    SessionInfo,
)
from medscribe.exceptions import (
    EventPublishError,
    RecordingNotFoundError,
    RecordingStateError,
    ResultsNotReadyError,
    UnauthorizedError,
)
from medscribe.infrastructure import FilesystemBlobStore, FilesystemBlobStoreFactory
from medscribe.repositories import RecordingRepositoryFactory, results_cache_key
from medscribe.services import RecordingService


class TestRecordingLifecycle:
    @pytest.mark.asyncio
    async def test_record_stop_and_read_results(self, service, capability, job_queue, worker):
        started = await service.start_recording(capability, PatientInfo(name="Jane Doe"))
        rid = started.recording_id

        await service.upload_chunk(capability, rid, 1, b"B")
        ack = await service.upload_chunk(capability, rid, 0, b"A")
        assert ack.chunks_received == 2

        accepted = await service.stop_recording(capability, rid)
        assert accepted.status == RecordingStatus.QUEUED
        assert [job.recording_id for job in job_queue.published] == [rid]

        assert await drain(job_queue, worker) == 1
        assert job_queue.acked == [1]

        results = await service.get_results(capability, rid)
        assert results.transcript
        assert "## " in results.summary
        assert results.patient_info.name == "Jane Doe"

        status = await service.get_status(capability, rid)
        assert status.status == RecordingStatus.COMPLETED
        assert status.stage == "done"
        assert status.progress == 100

        assert await service.get_audio(capability, rid) == b"AB"

    @pytest.mark.asyncio
    async def test_restop_produces_new_version(self, service, capability, job_queue, worker):
        rid = (await service.start_recording(capability)).recording_id
        await service.upload_chunk(capability, rid, 0, b"A")

        await service.stop_recording(capability, rid)
        await drain(job_queue, worker)
        first = await service.get_results(capability, rid)

        await service.stop_recording(capability, rid, SessionInfo(duration="00:10:00"))
        await drain(job_queue, worker)
        second = await service.get_results(capability, rid)

        assert second.result_version > first.result_version
        assert second.duration == "00:10:00"

    @pytest.mark.asyncio
    async def test_failed_job_marks_recording_failed(
        self, service, capability, job_queue, worker, transcriber
    ):
        transcriber.error = UnauthorizedError("AssemblyAI")
        rid = (await service.start_recording(capability)).recording_id
        await service.upload_chunk(capability, rid, 0, b"A")
        await service.stop_recording(capability, rid)

        await drain(job_queue, worker)

        status = await service.get_status(capability, rid)
        assert status.status == RecordingStatus.FAILED
        assert status.error_kind == "unauthorized"
        assert job_queue.dead_lettered == [1]
        with pytest.raises(ResultsNotReadyError):
            await service.get_results(capability, rid)

    @pytest.mark.asyncio
    async def test_crashed_worker_does_not_strand_recording(
        self, service, repositories, capability, cache, job_queue, worker, redis_config
    ):
        rid = (await service.start_recording(capability)).recording_id
        await service.upload_chunk(capability, rid, 0, b"A")
        await service.stop_recording(capability, rid)
        job = job_queue.published.pop(0)
        body = job.model_dump_json().encode("utf-8")
        # a worker took the job, then died holding the lock
        await cache.acquire_lock(f"job:{rid}", redis_config.job_lock_ttl_seconds)
        await repositories.for_capability(capability).set_status(
            rid, RecordingStatus.PROCESSING
        )

        for attempt in (1, 2, 3):
            await worker.handle_delivery(body, attempt, {"x-attempt": attempt})

        assert len(job_queue.retries) == 2
        assert job_queue.dead_lettered == [3]
        status = await service.get_status(capability, rid)
        assert status.status == RecordingStatus.FAILED
        assert status.error_kind == "abandoned"

        await service.stop_recording(capability, rid)
        await drain(job_queue, worker)
        results = await service.get_results(capability, rid)
        assert results.transcript


class ForeignOwnerStore(FilesystemBlobStore):
    """Store as seen by a caller whose credentials the bucket policy rejects."""

    async def get(self, path):
        raise UnauthorizedError("MinIO")


class OwnerScopedStoreFactory(FilesystemBlobStoreFactory):
    def __init__(self, root, owner_token):
        super().__init__(root)
        self._owner_token = owner_token

    def for_capability(self, capability):
        if capability.access_token == self._owner_token:
            return FilesystemBlobStore(self._root)
        return ForeignOwnerStore(self._root)


class TestResultsAccess:
    @pytest.fixture
    def scoped_service(self, tmp_path, cache, job_queue, progress, redis_config, capability):
        repositories = RecordingRepositoryFactory(
            OwnerScopedStoreFactory(tmp_path / "store", capability.access_token),
            cache,
            "medical-recordings",
            redis_config,
        )
        return RecordingService(repositories, cache, job_queue, progress, redis_config)

    @pytest.mark.asyncio
    async def test_cached_results_require_storage_access(
        self, scoped_service, capability, cache, job_queue, worker
    ):
        rid = (await scoped_service.start_recording(capability)).recording_id
        await scoped_service.upload_chunk(capability, rid, 0, b"A")
        await scoped_service.stop_recording(capability, rid)
        await drain(job_queue, worker)

        owner_results = await scoped_service.get_results(capability, rid)
        assert owner_results.transcript
        assert await cache.get(results_cache_key(rid)) is not None

        with pytest.raises(UnauthorizedError):
            await scoped_service.get_results(Capability(access_token="someone-else"), rid)


class TestRecordingService:
    @pytest.mark.asyncio
    async def test_start_creates_initialized_recording(self, service, capability):
        metadata = await service.start_recording(capability)

        assert metadata.recording_id.startswith("rec-")
        assert metadata.status == RecordingStatus.INITIALIZED

    @pytest.mark.asyncio
    async def test_first_chunk_moves_to_recording(self, service, capability):
        rid = (await service.start_recording(capability)).recording_id

        await service.upload_chunk(capability, rid, 0, b"A")

        assert (await service.get_status(capability, rid)).status == RecordingStatus.RECORDING

    @pytest.mark.asyncio
    async def test_empty_chunk_rejected(self, service, capability):
        rid = (await service.start_recording(capability)).recording_id

        with pytest.raises(ValueError):
            await service.upload_chunk(capability, rid, 0, b"")

    @pytest.mark.asyncio
    async def test_chunk_after_stop_rejected(self, service, capability):
        rid = (await service.start_recording(capability)).recording_id
        await service.upload_chunk(capability, rid, 0, b"A")
        await service.stop_recording(capability, rid)

        with pytest.raises(RecordingStateError):
            await service.upload_chunk(capability, rid, 1, b"B")

    @pytest.mark.asyncio
    async def test_double_stop_rejected(self, service, capability, job_queue):
        rid = (await service.start_recording(capability)).recording_id
        await service.stop_recording(capability, rid)

        with pytest.raises(RecordingStateError):
            await service.stop_recording(capability, rid)
        assert len(job_queue.published) == 1

    @pytest.mark.asyncio
    async def test_publish_failure_restores_status(self, service, capability, job_queue):
        rid = (await service.start_recording(capability)).recording_id
        await service.upload_chunk(capability, rid, 0, b"A")
        job_queue.fail_publish = EventPublishError("recording.stopped")

        with pytest.raises(EventPublishError):
            await service.stop_recording(capability, rid)

        assert (await service.get_status(capability, rid)).status == RecordingStatus.RECORDING

    @pytest.mark.asyncio
    async def test_results_not_ready(self, service, capability):
        rid = (await service.start_recording(capability)).recording_id

        with pytest.raises(ResultsNotReadyError):
            await service.get_results(capability, rid)

    @pytest.mark.asyncio
    async def test_unknown_recording(self, service, capability):
        with pytest.raises(RecordingNotFoundError):
            await service.get_results(capability, "rec-missing")
        with pytest.raises(RecordingNotFoundError):
            await service.upload_chunk(capability, "rec-missing", 0, b"A")

    @pytest.mark.asyncio
    async def test_audio_unavailable_while_recording(self, service, capability):
        rid = (await service.start_recording(capability)).recording_id
        await service.upload_chunk(capability, rid, 0, b"A")

        with pytest.raises(RecordingStateError):
            await service.get_audio(capability, rid)

    @pytest.mark.asyncio
    async def test_delete_removes_recording_and_cache(self, service, capability, cache):
        rid = (await service.start_recording(capability)).recording_id
        await service.upload_chunk(capability, rid, 0, b"A")
        await cache.set(results_cache_key(rid), {"stale": True})

        await service.delete_recording(capability, rid)

        assert await cache.get(results_cache_key(rid)) is None
        with pytest.raises(RecordingNotFoundError):
            await service.get_status(capability, rid)
        with pytest.raises(RecordingNotFoundError):
            await service.delete_recording(capability, rid)

    @pytest.mark.asyncio
    async def test_list_filters_newest_first(self, service, capability):
        first = await service.start_recording(
            capability, PatientInfo(name="Jane Doe", type="Follow-up")
        )
        second = await service.start_recording(
            capability, PatientInfo(name="John Roe", type="initial")
        )
        third = await service.start_recording(
            capability, PatientInfo(name="Janet Smith", type="follow-up")
        )

        everything = await service.list_recordings(capability)
        assert [m.recording_id for m in everything] == [
            third.recording_id,
            second.recording_id,
            first.recording_id,
        ]

        by_name = await service.list_recordings(capability, RecordingFilter(patient_name="jane"))
        assert [m.recording_id for m in by_name] == [third.recording_id, first.recording_id]

        by_type = await service.list_recordings(capability, RecordingFilter(visit_type="FOLLOW-UP"))
        assert {m.recording_id for m in by_type} == {first.recording_id, third.recording_id}

        by_status = await service.list_recordings(
            capability, RecordingFilter(status=RecordingStatus.COMPLETED)
        )
        assert by_status == []
