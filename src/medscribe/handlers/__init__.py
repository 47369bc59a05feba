"""Handler exports."""

from .transcription_job_handler import TranscriptionJobHandler, effective_session_info

__all__ = ["TranscriptionJobHandler", "effective_session_info"]
