import asyncio
from datetime import datetime, timezone

import pytest

from conftest import InMemoryCache
from medscribe.config import RedisConfig
from medscribe.domain import AudioChunk, RecordingMetadata, RecordingStatus, ResultArtifacts
from medscribe.exceptions import (
    AudioNotFoundError,
    FolderLockTimeoutError,
    RecordingNotFoundError,
)
from medscribe.infrastructure import FilesystemBlobStore
from medscribe.repositories import RecordingRepository, result_version


class CountingStore(FilesystemBlobStore):
    def __init__(self, root):
        super().__init__(root)
        self.created = []

    async def create_folder(self, path):
        self.created.append(path)
        await super().create_folder(path)


class NoLockCache(InMemoryCache):
    async def acquire_lock(self, name, ttl_seconds, wait_seconds=0):
        return None


def artifacts(tag):
    return ResultArtifacts(
        transcript_text=f"Doctor: transcript {tag}",
        transcript_html=f"<p>{tag}</p>",
        summary_text=f"## Plan\n- {tag}",
        summary_html=f"<h2>{tag}</h2>",
    )


class TestRecordingRepository:
    @pytest.fixture
    def store(self, tmp_path):
        return CountingStore(tmp_path / "store")

    @pytest.fixture
    def repo(self, store, cache, redis_config):
        return RecordingRepository(store, cache, "medical-recordings", redis_config)

    @pytest.mark.asyncio
    async def test_concurrent_root_creation_happens_once(self, repo, store):
        created = await asyncio.gather(repo.ensure_root_folder(), repo.ensure_root_folder())

        assert sorted(created) == [False, True]
        assert store.created == ["medical-recordings"]

    @pytest.mark.asyncio
    async def test_existing_folder_is_not_recreated(self, repo, store):
        assert await repo.ensure_root_folder()
        assert not await repo.ensure_root_folder()
        assert len(store.created) == 1

    @pytest.mark.asyncio
    async def test_folder_lock_timeout(self, store, redis_config):
        repo = RecordingRepository(store, NoLockCache(), "medical-recordings", redis_config)

        with pytest.raises(FolderLockTimeoutError) as exc_info:
            await repo.ensure_root_folder()

        assert exc_info.value.retryable
        assert store.created == []

    @pytest.mark.asyncio
    async def test_metadata_roundtrip_and_update(self, repo):
        created = await repo.create(RecordingMetadata(recording_id="rec-1"))

        loaded = await repo.load_metadata("rec-1")
        assert loaded.status == RecordingStatus.INITIALIZED
        assert loaded.created_at == created.created_at

        updated = await repo.set_status("rec-1", RecordingStatus.RECORDING, attempts=2)
        assert updated.attempts == 2
        assert updated.updated_at >= created.updated_at
        assert (await repo.load_metadata("rec-1")).status == RecordingStatus.RECORDING

    @pytest.mark.asyncio
    async def test_missing_metadata(self, repo):
        with pytest.raises(RecordingNotFoundError):
            await repo.load_metadata("rec-missing")

    @pytest.mark.asyncio
    async def test_combined_audio_built_in_order_and_persisted(self, repo, tmp_path):
        await repo.create(RecordingMetadata(recording_id="rec-1"))
        await repo.save_chunk("rec-1", AudioChunk(sequence=1, data=b"B"))
        await repo.save_chunk("rec-1", AudioChunk(sequence=0, data=b"A"))

        assert await repo.load_combined_audio("rec-1") == b"AB"

        assert await repo.delete_chunks("rec-1")
        assert await repo.load_combined_audio("rec-1") == b"AB"
        stored = tmp_path / "store" / "medical-recordings" / "rec-1" / "audio" / "complete-recording.wav"
        assert stored.read_bytes() == b"AB"

    @pytest.mark.asyncio
    async def test_no_audio(self, repo):
        await repo.create(RecordingMetadata(recording_id="rec-1"))

        with pytest.raises(AudioNotFoundError):
            await repo.load_combined_audio("rec-1")

    @pytest.mark.asyncio
    async def test_result_versions_accumulate(self, repo):
        await repo.create(RecordingMetadata(recording_id="rec-1"))

        await repo.save_results("rec-1", "20240101T000000000000Z", artifacts("first"))
        await repo.save_results("rec-1", "20240102T000000000000Z", artifacts("second"))

        versions = await repo.list_result_versions("rec-1")
        assert versions == ["20240101T000000000000Z", "20240102T000000000000Z"]
        transcript, summary = await repo.load_results("rec-1", versions[0])
        assert transcript == "Doctor: transcript first"
        assert summary == "## Plan\n- first"

    @pytest.mark.asyncio
    async def test_delete_and_list(self, repo):
        await repo.create(RecordingMetadata(recording_id="rec-1"))
        await repo.create(RecordingMetadata(recording_id="rec-2"))

        assert {m.recording_id for m in await repo.list_all()} == {"rec-1", "rec-2"}

        await repo.delete("rec-1")

        assert [m.recording_id for m in await repo.list_all()] == ["rec-2"]
        with pytest.raises(RecordingNotFoundError):
            await repo.delete("rec-1")


def test_result_version_is_sortable_timestamp():
    moment = datetime(2024, 3, 5, 14, 30, 1, 250, tzinfo=timezone.utc)
    assert result_version(moment) == "20240305T143001000250Z"


def test_lock_config_defaults():
    config = RedisConfig(host="redis")
    assert config.lock_ttl_seconds == 30
    assert config.lock_wait_seconds == 5.0
