from datetime import datetime

from pydantic import BaseModel

from medscribe.domain import PatientInfo, RecordingMetadata, RecordingStatus, SessionInfo


class StartRecordingRequest(BaseModel):
    """Optional patient details given when recording starts."""

    patient_info: PatientInfo | None = None


class StopRecordingRequest(BaseModel):
    """Optional session details given when recording stops."""

    session_info: SessionInfo | None = None


class RecordingStartedResponse(BaseModel):
    """Identifier and initial state of a new recording."""

    recording_id: str
    status: RecordingStatus
    created_at: datetime


class RecordingSummaryResponse(BaseModel):
    """Listing entry for a recording."""

    recording_id: str
    status: RecordingStatus
    created_at: datetime
    patient_info: PatientInfo | None = None
    completed_at: datetime | None = None
    transcript_length: int | None = None
    summary_available: bool = False

    @classmethod
    def from_metadata(cls, metadata: RecordingMetadata) -> "RecordingSummaryResponse":
        return cls(
            recording_id=metadata.recording_id,
            status=metadata.status,
            created_at=metadata.created_at,
            patient_info=metadata.effective_patient_info,
            completed_at=metadata.completed_at,
            transcript_length=metadata.transcript_length,
            summary_available=metadata.summary_available,
        )
