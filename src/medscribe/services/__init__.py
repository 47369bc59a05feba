"""Service exports."""

from .recording_service import RecordingService, new_recording_id

__all__ = ["RecordingService", "new_recording_id"]
