"""Typed error taxonomy shared by the pipeline, the worker and the API."""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable error categories that callers and the queue can branch on."""

    NOT_FOUND = "not_found"
    NOT_READY = "not_ready"
    INVALID_STATE = "invalid_state"
    UNAUTHORIZED = "unauthorized"
    TRANSCRIPTION_FAILED = "transcription_failed"
    TRANSCRIPTION_TIMEOUT = "transcription_timeout"
    SUMMARIZATION_FAILED = "summarization_failed"
    AUDIO_OPTIMIZATION_FAILED = "audio_optimization_failed"
    CLEANUP_FAILED = "cleanup_failed"
    STORAGE = "storage"
    LOCK_CONTENTION = "lock_contention"
    ABANDONED = "abandoned"
    PUBLISH_FAILED = "publish_failed"
    INTERNAL = "internal"


class MedscribeError(Exception):
    """Base class for every error raised by this package."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = True

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


def error_kind(error: BaseException) -> ErrorKind:
    """Returns the kind of any exception, INTERNAL for foreign ones."""
    if isinstance(error, MedscribeError):
        return error.kind
    return ErrorKind.INTERNAL


def is_retryable(error: BaseException) -> bool:
    """
    Decides whether a failed job should spend another attempt.

    Unknown exceptions are treated as transient.
    """
    if isinstance(error, MedscribeError):
        return error.retryable
    return True


class RecordingNotFoundError(MedscribeError):
    """Raised when no recording exists for the given identifier."""

    kind = ErrorKind.NOT_FOUND
    retryable = False

    def __init__(self, recording_id: str, cause: Exception | None = None):
        self.recording_id = recording_id
        super().__init__(f"Recording '{recording_id}' not found", cause)


class AudioNotFoundError(MedscribeError):
    """Raised when a recording has neither combined audio nor chunks."""

    kind = ErrorKind.NOT_FOUND
    retryable = False

    def __init__(self, recording_id: str, cause: Exception | None = None):
        self.recording_id = recording_id
        super().__init__(f"No audio stored for recording '{recording_id}'", cause)


class BlobNotFoundError(MedscribeError):
    """Raised by blob stores when an object key does not exist."""

    kind = ErrorKind.NOT_FOUND
    retryable = False

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        super().__init__(f"Object '{path}' not found", cause)


class ResultsNotReadyError(MedscribeError):
    """Raised when results are requested before the pipeline completed."""

    kind = ErrorKind.NOT_READY
    retryable = False

    def __init__(self, recording_id: str, status: str):
        self.recording_id = recording_id
        self.status = status
        super().__init__(
            f"Results for recording '{recording_id}' are not ready (status: {status})"
        )


class RecordingStateError(MedscribeError):
    """Raised when an operation is not allowed in the recording's status."""

    kind = ErrorKind.INVALID_STATE
    retryable = False

    def __init__(self, recording_id: str, status: str, operation: str):
        self.recording_id = recording_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} recording '{recording_id}' in status '{status}'"
        )


class UnauthorizedError(MedscribeError):
    """Raised when a downstream service rejects the owner's credentials."""

    kind = ErrorKind.UNAUTHORIZED
    retryable = False

    def __init__(self, service: str, cause: Exception | None = None):
        self.service = service
        super().__init__(f"Credentials rejected by {service}", cause)


class TranscriptionFailedError(MedscribeError):
    """Raised when the speech service fails or returns nothing usable."""

    kind = ErrorKind.TRANSCRIPTION_FAILED

    def __init__(self, reason: str, cause: Exception | None = None):
        self.reason = reason
        super().__init__(f"Transcription failed: {reason}", cause)


class TranscriptionTimeoutError(TranscriptionFailedError):
    """Raised when a transcription operation exceeds its time budget."""

    kind = ErrorKind.TRANSCRIPTION_TIMEOUT

    def __init__(self, operation_id: str | None, timeout_seconds: float):
        self.operation_id = operation_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"operation '{operation_id}' did not finish within {timeout_seconds:.0f}s"
        )


class SummarizationFailedError(MedscribeError):
    """Raised when the generative model cannot produce a summary."""

    kind = ErrorKind.SUMMARIZATION_FAILED

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message, cause)


class AudioOptimizationFailedError(MedscribeError):
    """Raised when audio cannot be decoded, filtered or encoded."""

    kind = ErrorKind.AUDIO_OPTIMIZATION_FAILED
    retryable = False

    def __init__(self, reason: str, cause: Exception | None = None):
        self.reason = reason
        super().__init__(f"Audio optimization failed: {reason}", cause)


class CleanupFailedError(MedscribeError):
    """Raised when temporary objects cannot be removed."""

    kind = ErrorKind.CLEANUP_FAILED

    def __init__(self, target: str, cause: Exception | None = None):
        self.target = target
        super().__init__(f"Failed to clean up '{target}'", cause)


class StorageDownloadError(MedscribeError):
    """Raised when downloading an object from storage fails."""

    kind = ErrorKind.STORAGE

    def __init__(self, object_name: str, cause: Exception | None = None):
        self.object_name = object_name
        super().__init__(f"Failed to download '{object_name}' from storage", cause)


class StorageUploadError(MedscribeError):
    """Raised when uploading an object to storage fails."""

    kind = ErrorKind.STORAGE

    def __init__(self, object_name: str, cause: Exception | None = None):
        self.object_name = object_name
        super().__init__(f"Failed to upload '{object_name}' to storage", cause)


class StorageDeleteError(MedscribeError):
    """Raised when deleting an object from storage fails."""

    kind = ErrorKind.STORAGE

    def __init__(self, object_name: str, cause: Exception | None = None):
        self.object_name = object_name
        super().__init__(f"Failed to delete '{object_name}' from storage", cause)


class FolderLockTimeoutError(MedscribeError):
    """Raised when the folder creation lock cannot be acquired in time."""

    kind = ErrorKind.LOCK_CONTENTION

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Timed out waiting for folder lock on '{path}'")


class JobAlreadyRunningError(MedscribeError):
    """Raised when another worker is already processing the same recording."""

    kind = ErrorKind.LOCK_CONTENTION

    def __init__(self, recording_id: str):
        self.recording_id = recording_id
        super().__init__(f"Recording '{recording_id}' is already being processed")


class JobAbandonedError(MedscribeError):
    """Raised when a job's lock outlived a worker that stopped without finishing it."""

    kind = ErrorKind.ABANDONED
    retryable = False

    def __init__(self, recording_id: str):
        self.recording_id = recording_id
        super().__init__(
            f"Processing of recording '{recording_id}' was abandoned by a stopped worker"
        )


class EventPublishError(MedscribeError):
    """Raised when publishing a job to the message broker fails."""

    kind = ErrorKind.PUBLISH_FAILED

    def __init__(self, routing_key: str, cause: Exception | None = None):
        self.routing_key = routing_key
        super().__init__(f"Failed to publish event with routing key '{routing_key}'", cause)
