"""Recording endpoints."""

from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Response,
    UploadFile,
)

from medscribe.dependencies import get_recording_service
from medscribe.domain import (
    Capability,
    ChunkAck,
    JobAccepted,
    RecordingFilter,
    RecordingProgress,
    RecordingResults,
    RecordingStatus,
)
from medscribe.exceptions import ErrorKind, MedscribeError
from medscribe.logging import setup_logging
from medscribe.services import RecordingService

from ..response_models import (
    RecordingStartedResponse,
    RecordingSummaryResponse,
    StartRecordingRequest,
    StopRecordingRequest,
)

logger = setup_logging()

router = APIRouter(prefix="/recordings", tags=["recordings"])

_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_READY: 409,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.STORAGE: 502,
    ErrorKind.PUBLISH_FAILED: 502,
    ErrorKind.LOCK_CONTENTION: 503,
}


def to_http_exception(error: MedscribeError) -> HTTPException:
    """Maps an error kind to its HTTP status, keeping the kind in the body."""
    status_code = _STATUS_CODES.get(error.kind, 500)
    if status_code >= 500:
        logger.error(
            "Request failed", extra={"error_kind": error.kind.value, "error": str(error)}
        )
    return HTTPException(
        status_code=status_code,
        detail={"error": error.kind.value, "message": str(error)},
    )


def get_capability(
    authorization: Annotated[str | None, Header()] = None,
    x_refresh_token: Annotated[str | None, Header()] = None,
) -> Capability:
    """Reads the caller's OAuth tokens from the request headers."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=401,
            detail={"error": ErrorKind.UNAUTHORIZED.value, "message": "Bearer token required"},
        )
    return Capability(access_token=token.strip(), refresh_token=x_refresh_token)


CapabilityDep = Annotated[Capability, Depends(get_capability)]
ServiceDep = Annotated[RecordingService, Depends(get_recording_service)]


@router.post("", response_model=RecordingStartedResponse, status_code=201)
async def start_recording(
    capability: CapabilityDep,
    service: ServiceDep,
    request: StartRecordingRequest | None = None,
):
    """Starts a new recording."""
    patient_info = request.patient_info if request else None
    try:
        metadata = await service.start_recording(capability, patient_info)
    except MedscribeError as e:
        raise to_http_exception(e)
    return RecordingStartedResponse(
        recording_id=metadata.recording_id,
        status=metadata.status,
        created_at=metadata.created_at,
    )


@router.get("", response_model=list[RecordingSummaryResponse])
async def list_recordings(
    capability: CapabilityDep,
    service: ServiceDep,
    patient_name: str | None = None,
    visit_type: Annotated[str | None, Query(alias="type")] = None,
    status: RecordingStatus | None = None,
):
    """Lists the caller's recordings, newest first."""
    recording_filter = RecordingFilter(
        patient_name=patient_name, visit_type=visit_type, status=status
    )
    try:
        recordings = await service.list_recordings(capability, recording_filter)
    except MedscribeError as e:
        raise to_http_exception(e)
    return [RecordingSummaryResponse.from_metadata(r) for r in recordings]


@router.post("/{recording_id}/chunks", response_model=ChunkAck)
async def upload_chunk(
    recording_id: str,
    capability: CapabilityDep,
    service: ServiceDep,
    file: Annotated[UploadFile, File()],
    chunk_number: Annotated[int, Form(ge=0)],
):
    """Stores one audio chunk of a recording."""
    data = await file.read()
    try:
        return await service.upload_chunk(
            capability,
            recording_id,
            chunk_number,
            data,
            file.content_type or "audio/wav",
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except MedscribeError as e:
        raise to_http_exception(e)


@router.post("/{recording_id}/stop", response_model=JobAccepted, status_code=202)
async def stop_recording(
    recording_id: str,
    capability: CapabilityDep,
    service: ServiceDep,
    request: StopRecordingRequest | None = None,
):
    """Stops a recording and queues it for transcription."""
    session_info = request.session_info if request else None
    try:
        return await service.stop_recording(capability, recording_id, session_info)
    except MedscribeError as e:
        raise to_http_exception(e)


@router.get("/{recording_id}/results", response_model=RecordingResults)
async def get_results(recording_id: str, capability: CapabilityDep, service: ServiceDep):
    """Returns the transcript and summary of a completed recording."""
    try:
        return await service.get_results(capability, recording_id)
    except MedscribeError as e:
        raise to_http_exception(e)


@router.get("/{recording_id}/status", response_model=RecordingProgress)
async def get_status(recording_id: str, capability: CapabilityDep, service: ServiceDep):
    """Returns the recording's status and pipeline progress."""
    try:
        return await service.get_status(capability, recording_id)
    except MedscribeError as e:
        raise to_http_exception(e)


@router.get("/{recording_id}/audio")
async def get_audio(recording_id: str, capability: CapabilityDep, service: ServiceDep):
    """Downloads the combined audio of a stopped recording."""
    try:
        audio = await service.get_audio(capability, recording_id)
    except MedscribeError as e:
        raise to_http_exception(e)
    return Response(
        content=audio,
        media_type="audio/wav",
        headers={"Content-Disposition": f'attachment; filename="{recording_id}.wav"'},
    )


@router.delete("/{recording_id}", status_code=204)
async def delete_recording(recording_id: str, capability: CapabilityDep, service: ServiceDep):
    """Deletes a recording with all its audio and results."""
    try:
        await service.delete_recording(capability, recording_id)
    except MedscribeError as e:
        raise to_http_exception(e)
    return Response(status_code=204)
