"""Domain models for the consultation recording pipeline."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordingStatus(str, Enum):
    """Lifecycle of a recording from start to a terminal state."""

    INITIALIZED = "initialized"
    RECORDING = "recording"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PatientInfo(BaseModel, frozen=True):
    """Optional patient details attached to a recording."""

    name: str
    id: str | None = None
    type: str | None = None


class SessionInfo(BaseModel, frozen=True):
    """Session details supplied when a recording is stopped."""

    duration: str | None = None
    patient_info: PatientInfo | None = None


class Capability(BaseModel, frozen=True):
    """OAuth token pair that scopes storage calls to the recording's owner."""

    access_token: str = Field(repr=False)
    refresh_token: str | None = Field(default=None, repr=False)


class RecordingMetadata(BaseModel):
    """
    Contents of a recording's ``session-info.json``.

    The blob store is the source of truth for this record; the cache only
    mirrors finished results.
    """

    recording_id: str
    status: RecordingStatus = RecordingStatus.INITIALIZED
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    patient_info: PatientInfo | None = None
    session_info: SessionInfo | None = None
    attempts: int = 0
    completed_at: datetime | None = None
    transcript_length: int | None = None
    summary_available: bool = False
    summary_source: str | None = None
    last_result_version: str | None = None
    failed_at: datetime | None = None
    error_kind: str | None = None
    error_message: str | None = None

    @property
    def effective_patient_info(self) -> PatientInfo | None:
        """Patient info given at stop time wins over the one given at start."""
        if self.session_info and self.session_info.patient_info:
            return self.session_info.patient_info
        return self.patient_info


class AudioChunk(BaseModel, frozen=True):
    """One uploaded audio segment."""

    sequence: int = Field(ge=0)
    data: bytes
    content_type: str = "audio/wav"


class Word(BaseModel, frozen=True):
    """A recognized word with timing and an opaque diarization tag."""

    text: str
    start_ms: int = 0
    end_ms: int = 0
    speaker_tag: int | None = None
    confidence: float | None = None


class TranscriptionResult(BaseModel, frozen=True):
    """Raw output of the speech transcription service."""

    text: str
    words: list[Word] = []
    confidence: float | None = None
    operation_id: str | None = None


class SummaryOutcome(BaseModel, frozen=True):
    """A summary together with how it was produced."""

    text: str
    source: Literal["llm", "fallback", "unavailable"]


class TranscriptionJob(BaseModel, frozen=True):
    """The unit of queued work: one stopped recording to process."""

    recording_id: str
    capability: Capability
    session_info: SessionInfo | None = None
    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    enqueued_at: datetime = Field(default_factory=utc_now)


class PipelineStage(str, Enum):
    """Stages of the transcription pipeline in execution order."""

    DISPATCHED = "dispatched"
    FETCHED = "fetched"
    OPTIMIZED = "optimized"
    UPLOADED = "uploaded"
    TRANSCRIBED = "transcribed"
    SUMMARIZED = "summarized"
    PERSISTED = "persisted"
    CACHED = "cached"
    CLEANED_UP = "cleaned_up"
    DONE = "done"
    FAILED = "failed"

    @property
    def progress(self) -> int:
        return STAGE_PROGRESS[self]


STAGE_PROGRESS = {
    PipelineStage.DISPATCHED: 5,
    PipelineStage.FETCHED: 20,
    PipelineStage.OPTIMIZED: 30,
    PipelineStage.UPLOADED: 40,
    PipelineStage.TRANSCRIBED: 70,
    PipelineStage.SUMMARIZED: 90,
    PipelineStage.PERSISTED: 95,
    PipelineStage.CACHED: 97,
    PipelineStage.CLEANED_UP: 99,
    PipelineStage.DONE: 100,
    PipelineStage.FAILED: 100,
}


class ResultArtifacts(BaseModel, frozen=True):
    """The four files written for one pipeline run."""

    transcript_text: str
    transcript_html: str
    summary_text: str
    summary_html: str


class PipelineResult(BaseModel, frozen=True):
    """Outcome of a successful pipeline run."""

    recording_id: str
    result_version: str
    transcript_length: int
    summary_source: str


class RecordingResults(BaseModel, frozen=True):
    """Transcript and summary as returned to callers."""

    recording_id: str
    transcript: str
    summary: str
    patient_info: PatientInfo | None = None
    duration: str | None = None
    result_version: str | None = None
    completed_at: datetime | None = None


class RecordingFilter(BaseModel, frozen=True):
    """Filters accepted by the recording listing."""

    patient_name: str | None = None
    visit_type: str | None = None
    status: RecordingStatus | None = None

    def matches(self, metadata: RecordingMetadata) -> bool:
        patient = metadata.effective_patient_info
        if self.patient_name:
            if not patient or self.patient_name.lower() not in patient.name.lower():
                return False
        if self.visit_type:
            if not patient or (patient.type or "").lower() != self.visit_type.lower():
                return False
        if self.status and metadata.status != self.status:
            return False
        return True


class RecordingProgress(BaseModel, frozen=True):
    """Status view combining durable state with advisory telemetry."""

    recording_id: str
    status: RecordingStatus
    stage: str | None = None
    progress: int | None = None
    chunks_received: int = 0
    error_kind: str | None = None
    error_message: str | None = None


class ChunkAck(BaseModel, frozen=True):
    """Acknowledgement of a stored audio chunk."""

    recording_id: str
    chunk_number: int
    chunks_received: int


class JobAccepted(BaseModel, frozen=True):
    """Acknowledgement that a transcription job was enqueued."""

    recording_id: str
    job_id: str
    status: RecordingStatus = RecordingStatus.QUEUED
