import asyncio
import json
import uuid

import pytest

from medscribe.config import QueueConfig, RedisConfig, SpeakerConfig, SummaryConfig
from medscribe.domain import (
    AudioOptimizer,
    Capability,
    ResultFormatter,
    Summarizer,
    TranscriptBuilder,
    TranscriptionResult,
    Word,
)
from medscribe.handlers import TranscriptionJobHandler
from medscribe.infrastructure import (
    CacheProgressReporter,
    FilesystemBlobStoreFactory,
    FilesystemStagingArea,
)
from medscribe.infrastructure.interfaces import (
    CacheService,
    JobPublisher,
    JobQueue,
    LLMService,
    TranscriptionService,
)
from medscribe.repositories import RecordingRepositoryFactory
from medscribe.services import RecordingService
from medscribe.worker import Worker


class InMemoryCache(CacheService):
    """Cache fake with the same JSON round-trip and lock semantics as Redis."""

    def __init__(self):
        self.data = {}
        self.set_calls = []
        self.lock_expiry = {}
        self.extend_calls = []

    async def get(self, key):
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key, value, ttl_seconds=None):
        self.set_calls.append((key, ttl_seconds))
        self.data[key] = json.dumps(value, default=str)
        return True

    async def delete(self, key):
        self.data.pop(key, None)
        return True

    async def delete_pattern(self, pattern):
        prefix = pattern.rstrip("*")
        keys = [k for k in self.data if k.startswith(prefix)]
        for key in keys:
            del self.data[key]
        return len(keys)

    async def get_or_set(self, key, factory, ttl_seconds=None):
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await factory()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value

    async def increment(self, key, ttl_seconds=None):
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        return value

    async def acquire_lock(self, name, ttl_seconds, wait_seconds=0):
        lock_key = f"lock:{name}"
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        while True:
            expires_at = self.lock_expiry.get(lock_key)
            if expires_at is not None and loop.time() >= expires_at:
                self.data.pop(lock_key, None)
                del self.lock_expiry[lock_key]
            if lock_key not in self.data:
                token = uuid.uuid4().hex
                self.data[lock_key] = json.dumps(token)
                self.lock_expiry[lock_key] = loop.time() + ttl_seconds
                return token
            if loop.time() >= deadline:
                return None
            await asyncio.sleep(0.01)

    async def extend_lock(self, name, token, ttl_seconds):
        lock_key = f"lock:{name}"
        self.extend_calls.append((name, ttl_seconds))
        if self.data.get(lock_key) != json.dumps(token):
            return False
        self.lock_expiry[lock_key] = asyncio.get_running_loop().time() + ttl_seconds
        return True

    async def release_lock(self, name, token):
        lock_key = f"lock:{name}"
        if self.data.get(lock_key) == json.dumps(token):
            del self.data[lock_key]
            self.lock_expiry.pop(lock_key, None)
            return True
        return False


class FakeJobQueue(JobPublisher, JobQueue):
    """Records every queue interaction instead of talking to a broker."""

    def __init__(self):
        self.published = []
        self.acked = []
        self.retries = []
        self.dead_lettered = []
        self.fail_publish = None

    def enqueue(self, job):
        if self.fail_publish is not None:
            raise self.fail_publish
        self.published.append(job)
        return job.job_id

    def setup(self):
        pass

    def consume(self, callback):
        pass

    def acknowledge(self, delivery_tag):
        self.acked.append(delivery_tag)

    def schedule_retry(self, body, failed_attempt, delivery_tag):
        self.retries.append((body, failed_attempt, delivery_tag))

    def dead_letter(self, delivery_tag):
        self.dead_lettered.append(delivery_tag)

    def stop(self):
        pass


def words_for(tags, text="word"):
    return [
        Word(text=f"{text}{i}", start_ms=i * 100, end_ms=i * 100 + 90, speaker_tag=tag)
        for i, tag in enumerate(tags)
    ]


DEFAULT_TRANSCRIPTION = TranscriptionResult(
    text="What brings you in today? I have a headache. The plan is rest.",
    words=[
        Word(text="What", speaker_tag=1),
        Word(text="brings", speaker_tag=1),
        Word(text="you", speaker_tag=1),
        Word(text="in", speaker_tag=1),
        Word(text="today?", speaker_tag=1),
        Word(text="I", speaker_tag=2),
        Word(text="have", speaker_tag=2),
        Word(text="a", speaker_tag=2),
        Word(text="bad", speaker_tag=2),
        Word(text="headache.", speaker_tag=2),
        Word(text="The", speaker_tag=1),
        Word(text="treatment", speaker_tag=1),
        Word(text="plan", speaker_tag=1),
        Word(text="is", speaker_tag=1),
        Word(text="rest.", speaker_tag=1),
    ],
    confidence=0.93,
    operation_id="op-1",
)


class FakeTranscriber(TranscriptionService):
    def __init__(self, result=DEFAULT_TRANSCRIPTION):
        self.result = result
        self.error = None
        self.delay = 0
        self.calls = []

    async def transcribe(self, audio_locator, vocabulary=()):
        self.calls.append((audio_locator, tuple(vocabulary)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeLLM(LLMService):
    def __init__(self, text="## Chief Complaint\n- Headache\n\n## Plan\n- Rest"):
        self.text = text
        self.error = None
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


class PassthroughOptimizer(AudioOptimizer):
    """Skips ffmpeg; the pipeline only needs bytes that change nothing."""

    def _transcode(self, audio_data, recording_id):
        return b"FLAC" + audio_data


class StageRecorder(CacheProgressReporter):
    def __init__(self, cache):
        super().__init__(cache, ttl_seconds=60)
        self.stages = []

    async def report(self, recording_id, stage, detail=None):
        self.stages.append(stage)
        await super().report(recording_id, stage, detail)


@pytest.fixture
def redis_config():
    return RedisConfig(
        host="localhost", lock_wait_seconds=0.5, lock_ttl_seconds=5, job_lock_ttl_seconds=1
    )


@pytest.fixture
def capability():
    return Capability(access_token="access-token", refresh_token="refresh-token")


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def job_queue():
    return FakeJobQueue()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def progress(cache):
    return StageRecorder(cache)


@pytest.fixture
def store_factory(tmp_path):
    return FilesystemBlobStoreFactory(tmp_path / "store")


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def repositories(store_factory, cache, redis_config):
    return RecordingRepositoryFactory(
        store_factory, cache, "medical-recordings", redis_config
    )


@pytest.fixture
def repository(repositories, capability):
    return repositories.for_capability(capability)


@pytest.fixture
def handler(repositories, cache, staging_dir, transcriber, llm, progress, redis_config):
    speakers = SpeakerConfig()
    return TranscriptionJobHandler(
        repositories=repositories,
        cache=cache,
        staging=FilesystemStagingArea(staging_dir),
        transcription_service=transcriber,
        transcript_builder=TranscriptBuilder(speakers),
        summarizer=Summarizer(llm, SummaryConfig()),
        optimizer=PassthroughOptimizer(),
        formatter=ResultFormatter(speakers),
        progress=progress,
        redis_config=redis_config,
    )


@pytest.fixture
def service(repositories, cache, job_queue, progress, redis_config):
    return RecordingService(repositories, cache, job_queue, progress, redis_config)


@pytest.fixture
def worker(job_queue, handler):
    return Worker(job_queue, handler, QueueConfig(max_attempts=3))


async def drain(job_queue, worker):
    """Delivers every published job to the worker, like the broker would."""
    delivered = 0
    while job_queue.published:
        job = job_queue.published.pop(0)
        delivered += 1
        await worker.handle_delivery(
            job.model_dump_json().encode("utf-8"), delivered, {"x-attempt": 1}
        )
    return delivered


