"""Abstract interface for transcription service operations."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from medscribe.domain.models import TranscriptionResult


class TranscriptionService(ABC):
    """Abstract base class for speech transcription backends."""

    @abstractmethod
    async def transcribe(
        self, audio_locator: str, vocabulary: Sequence[str] = ()
    ) -> TranscriptionResult:
        """
        Transcribes staged audio with speaker diarization.

        Waits for the long-running operation to finish, bounded by an
        operation-level timeout.

        Args:
            audio_locator: URL or path returned by the staging area.
            vocabulary: Phrases whose recognition likelihood is boosted.

        Returns:
            Text, per-word tokens with speaker tags, and confidence.

        Raises:
            TranscriptionTimeoutError: If the operation exceeds its time budget.
            TranscriptionFailedError: If the service fails or returns no text.
            UnauthorizedError: If the service rejects the credentials.
        """
        pass
