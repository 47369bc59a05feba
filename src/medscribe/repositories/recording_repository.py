"""Blob-store layout and persistence for recordings."""

import asyncio
from datetime import datetime

from pydantic import ValidationError

from medscribe.config import RedisConfig
from medscribe.domain.audio_combiner import (
    AudioCombiner,
    chunk_file_name,
    parse_chunk_sequence,
)
from medscribe.domain.models import (
    AudioChunk,
    Capability,
    RecordingMetadata,
    RecordingStatus,
    ResultArtifacts,
    utc_now,
)
from medscribe.exceptions import (
    AudioNotFoundError,
    BlobNotFoundError,
    FolderLockTimeoutError,
    RecordingNotFoundError,
)
from medscribe.infrastructure.interfaces import BlobStore, BlobStoreFactory, CacheService
from medscribe.logging import setup_logging

logger = setup_logging()

METADATA_FILE = "session-info.json"
COMBINED_AUDIO_FILE = "complete-recording.wav"
CHUNKS_FOLDER = "chunks"
AUDIO_FOLDER = "audio"
RESULTS_FOLDER = "results"

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
WAV_CONTENT_TYPE = "audio/wav"


def result_version(moment: datetime | None = None) -> str:
    """Timestamp suffix shared by the four files of one pipeline run."""
    return (moment or utc_now()).strftime("%Y%m%dT%H%M%S%fZ")


def result_file_names(version: str) -> dict[str, str]:
    return {
        "transcript_text": f"transcript-{version}.txt",
        "transcript_html": f"transcript-{version}.html",
        "summary_text": f"summary-{version}.txt",
        "summary_html": f"summary-{version}.html",
    }


class RecordingRepository:
    """
    Reads and writes everything stored for a recording.

    Layout under the root folder::

        {recording_id}/session-info.json
        {recording_id}/chunks/chunk-000000.wav
        {recording_id}/audio/complete-recording.wav
        {recording_id}/results/{transcript|summary}-{version}.{txt|html}
    """

    def __init__(
        self,
        store: BlobStore,
        cache: CacheService,
        root_folder: str,
        lock_config: RedisConfig,
        combiner: AudioCombiner | None = None,
    ):
        self._store = store
        self._cache = cache
        self._root = root_folder.strip("/")
        self._lock_config = lock_config
        self._combiner = combiner or AudioCombiner()

    def recording_folder(self, recording_id: str) -> str:
        return f"{self._root}/{recording_id}"

    def chunks_folder(self, recording_id: str) -> str:
        return f"{self.recording_folder(recording_id)}/{CHUNKS_FOLDER}"

    def audio_path(self, recording_id: str) -> str:
        return f"{self.recording_folder(recording_id)}/{AUDIO_FOLDER}/{COMBINED_AUDIO_FILE}"

    def results_folder(self, recording_id: str) -> str:
        return f"{self.recording_folder(recording_id)}/{RESULTS_FOLDER}"

    def _metadata_path(self, recording_id: str) -> str:
        return f"{self.recording_folder(recording_id)}/{METADATA_FILE}"

    async def ensure_folder(self, path: str) -> bool:
        """
        Creates a folder unless it exists, safe under concurrent first use.

        The existence check is repeated while holding the ``folder:{path}``
        lock, so racing callers create the folder exactly once.

        Returns:
            True if this call created the folder.

        Raises:
            FolderLockTimeoutError: If the lock is not acquired in time.
        """
        if await self._store.is_folder(path):
            return False

        lock_name = f"folder:{path}"
        token = await self._cache.acquire_lock(
            lock_name,
            self._lock_config.lock_ttl_seconds,
            self._lock_config.lock_wait_seconds,
        )
        if token is None:
            raise FolderLockTimeoutError(path)

        try:
            if await self._store.is_folder(path):
                return False
            await self._store.create_folder(path)
            logger.info("Folder created", extra={"folder": path})
            return True
        finally:
            await self._cache.release_lock(lock_name, token)

    async def ensure_root_folder(self) -> bool:
        return await self.ensure_folder(self._root)

    async def create(self, metadata: RecordingMetadata) -> RecordingMetadata:
        await self.ensure_root_folder()
        await self.ensure_folder(self.recording_folder(metadata.recording_id))
        return await self.save_metadata(metadata)

    async def exists(self, recording_id: str) -> bool:
        return await self._store.exists(self._metadata_path(recording_id))

    async def load_metadata(self, recording_id: str) -> RecordingMetadata:
        """
        Loads a recording's session-info.json.

        Raises:
            RecordingNotFoundError: If the recording has no metadata.
        """
        try:
            raw = await self._store.get(self._metadata_path(recording_id))
        except BlobNotFoundError as e:
            raise RecordingNotFoundError(recording_id, e) from e
        return RecordingMetadata.model_validate_json(raw)

    async def save_metadata(self, metadata: RecordingMetadata) -> RecordingMetadata:
        metadata = metadata.model_copy(update={"updated_at": utc_now()})
        await self._store.put(
            self._metadata_path(metadata.recording_id),
            metadata.model_dump_json(indent=2).encode("utf-8"),
            JSON_CONTENT_TYPE,
        )
        return metadata

    async def update(self, recording_id: str, **changes) -> RecordingMetadata:
        """Merges field changes into the stored metadata."""
        metadata = await self.load_metadata(recording_id)
        return await self.save_metadata(metadata.model_copy(update=changes))

    async def set_status(
        self, recording_id: str, status: RecordingStatus, **changes
    ) -> RecordingMetadata:
        metadata = await self.update(recording_id, status=status, **changes)
        logger.info(
            "Recording status changed",
            extra={"recording_id": recording_id, "status": status.value},
        )
        return metadata

    async def save_chunk(self, recording_id: str, chunk: AudioChunk) -> str:
        folder = self.chunks_folder(recording_id)
        await self.ensure_folder(folder)
        path = f"{folder}/{chunk_file_name(chunk.sequence)}"
        await self._store.put(path, chunk.data, chunk.content_type)
        return path

    async def list_chunks(self, recording_id: str) -> list[AudioChunk]:
        folder = self.chunks_folder(recording_id)
        names = await self._store.list(folder, name_filter=".wav")
        sequences = [(parse_chunk_sequence(name), name) for name in names]
        sequences = [(seq, name) for seq, name in sequences if seq is not None]
        payloads = await asyncio.gather(
            *(self._store.get(f"{folder}/{name}") for _, name in sequences)
        )
        return [
            AudioChunk(sequence=seq, data=data)
            for (seq, _), data in zip(sequences, payloads)
        ]

    async def load_combined_audio(self, recording_id: str) -> bytes:
        """
        Returns the recording's combined audio, building it from chunks once.

        The combined object is persisted before chunks are ever deleted, so a
        retried job still finds its audio after an earlier attempt cleaned up.

        Raises:
            AudioNotFoundError: If there is neither combined audio nor a chunk.
        """
        path = self.audio_path(recording_id)
        try:
            return await self._store.get(path)
        except BlobNotFoundError:
            pass

        chunks = await self.list_chunks(recording_id)
        if not chunks:
            raise AudioNotFoundError(recording_id)

        combined = self._combiner.combine(chunks)
        if not combined:
            raise AudioNotFoundError(recording_id)

        await self.ensure_folder(f"{self.recording_folder(recording_id)}/{AUDIO_FOLDER}")
        await self._store.put(path, combined, WAV_CONTENT_TYPE)
        logger.info(
            "Chunks combined",
            extra={
                "recording_id": recording_id,
                "chunk_count": len(chunks),
                "size": len(combined),
            },
        )
        return combined

    async def delete_chunks(self, recording_id: str) -> bool:
        """Deletes the chunk folder; refused without effect if it is not a folder."""
        return await self._store.delete_folder(self.chunks_folder(recording_id))

    async def save_results(
        self, recording_id: str, version: str, artifacts: ResultArtifacts
    ) -> dict[str, str]:
        """
        Writes the four result files of one run concurrently.

        Returns:
            Mapping of artifact name to stored path.
        """
        folder = self.results_folder(recording_id)
        await self.ensure_folder(folder)

        names = result_file_names(version)
        paths = {key: f"{folder}/{name}" for key, name in names.items()}
        await asyncio.gather(
            self._store.put(
                paths["transcript_text"],
                artifacts.transcript_text.encode("utf-8"),
                TEXT_CONTENT_TYPE,
            ),
            self._store.put(
                paths["transcript_html"],
                artifacts.transcript_html.encode("utf-8"),
                HTML_CONTENT_TYPE,
            ),
            self._store.put(
                paths["summary_text"],
                artifacts.summary_text.encode("utf-8"),
                TEXT_CONTENT_TYPE,
            ),
            self._store.put(
                paths["summary_html"],
                artifacts.summary_html.encode("utf-8"),
                HTML_CONTENT_TYPE,
            ),
        )
        logger.info(
            "Results persisted",
            extra={"recording_id": recording_id, "result_version": version},
        )
        return paths

    async def list_result_versions(self, recording_id: str) -> list[str]:
        names = await self._store.list(self.results_folder(recording_id), "transcript-")
        return sorted(
            name[len("transcript-"):-len(".txt")]
            for name in names
            if name.startswith("transcript-") and name.endswith(".txt")
        )

    async def load_results(self, recording_id: str, version: str) -> tuple[str, str]:
        """
        Loads the plain-text transcript and summary of one result version.

        Raises:
            BlobNotFoundError: If either file of the version is missing.
        """
        folder = self.results_folder(recording_id)
        names = result_file_names(version)
        transcript, summary = await asyncio.gather(
            self._store.get(f"{folder}/{names['transcript_text']}"),
            self._store.get(f"{folder}/{names['summary_text']}"),
        )
        return transcript.decode("utf-8"), summary.decode("utf-8")

    async def delete(self, recording_id: str) -> None:
        """
        Deletes everything stored for a recording.

        Raises:
            RecordingNotFoundError: If the recording folder does not exist.
        """
        if not await self._store.delete_folder(self.recording_folder(recording_id)):
            raise RecordingNotFoundError(recording_id)
        logger.info("Recording deleted", extra={"recording_id": recording_id})

    async def list_all(self) -> list[RecordingMetadata]:
        """Loads metadata of every recording under the root folder."""
        recording_ids = await self._store.list(self._root)
        loaded = await asyncio.gather(
            *(self._load_listed(rid) for rid in recording_ids)
        )
        return [metadata for metadata in loaded if metadata is not None]

    async def _load_listed(self, recording_id: str) -> RecordingMetadata | None:
        try:
            return await self.load_metadata(recording_id)
        except RecordingNotFoundError:
            return None
        except ValidationError:
            logger.warning(
                "Skipping recording with unreadable metadata",
                extra={"recording_id": recording_id},
            )
            return None


def results_cache_key(recording_id: str) -> str:
    return f"recording:{recording_id}"


def chunk_counter_key(recording_id: str) -> str:
    return f"chunks:{recording_id}"


class RecordingRepositoryFactory:
    """Builds repositories bound to one owner's blob store."""

    def __init__(
        self,
        store_factory: BlobStoreFactory,
        cache: CacheService,
        root_folder: str,
        lock_config: RedisConfig,
    ):
        self._store_factory = store_factory
        self._cache = cache
        self._root_folder = root_folder
        self._lock_config = lock_config

    def for_capability(self, capability: Capability) -> RecordingRepository:
        return RecordingRepository(
            self._store_factory.for_capability(capability),
            self._cache,
            self._root_folder,
            self._lock_config,
        )
