"""AssemblyAI implementation of the TranscriptionService interface."""

import asyncio
from collections.abc import Sequence

import assemblyai as aai

from medscribe.config import AssemblyAIConfig
from medscribe.domain.models import TranscriptionResult, Word
from medscribe.exceptions import (
    TranscriptionFailedError,
    TranscriptionTimeoutError,
    UnauthorizedError,
)
from medscribe.logging import setup_logging

from .interfaces import TranscriptionService

logger = setup_logging()

_FINISHED = (aai.TranscriptStatus.completed, aai.TranscriptStatus.error)
_UNAUTHORIZED_STATUS_CODES = {401, 403}


def speaker_tag(label: str | None) -> int | None:
    """Maps AssemblyAI speaker letters to integer tags: A -> 1, B -> 2, ..."""
    if not label:
        return None
    label = label.strip()
    if label.isdigit():
        return int(label)
    if len(label) == 1 and label.isalpha():
        return ord(label.upper()) - ord("A") + 1
    return None


def _service_error(reason: str, error: Exception) -> Exception:
    """Maps an SDK failure to the pipeline's error kinds by its HTTP status."""
    if (
        isinstance(error, aai.types.AssemblyAIError)
        and error.status_code in _UNAUTHORIZED_STATUS_CODES
    ):
        return UnauthorizedError("AssemblyAI", error)
    return TranscriptionFailedError(reason, error)


class AssemblyAITranscriber(TranscriptionService):
    """Handles audio transcription using AssemblyAI."""

    def __init__(self, transcriber: aai.Transcriber, config: AssemblyAIConfig):
        self._transcriber = transcriber
        self._config = config

    def _transcription_config(self, vocabulary: Sequence[str]) -> aai.TranscriptionConfig:
        config = aai.TranscriptionConfig(
            speaker_labels=self._config.speaker_labels,
            speakers_expected=self._config.speakers_expected,
            language_code=self._config.language_code,
        )
        if vocabulary:
            config.set_word_boost(list(vocabulary), aai.WordBoost(self._config.boost_param))
        return config

    async def transcribe(
        self, audio_locator: str, vocabulary: Sequence[str] = ()
    ) -> TranscriptionResult:
        """
        Submits staged audio to AssemblyAI and polls until it finishes.

        Submission and each status poll are blocking SDK calls and run in a
        worker thread; the event loop sleeps between polls.
        """
        try:
            submitted = await asyncio.to_thread(
                self._transcriber.submit,
                audio_locator,
                self._transcription_config(vocabulary),
            )
        except Exception as e:
            logger.exception("AssemblyAI submission failed")
            raise _service_error("submission rejected", e) from e

        operation_id = submitted.id
        logger.info("Transcription submitted", extra={"operation_id": operation_id})

        transcript = await self._wait_for_completion(submitted)
        if transcript.status == aai.TranscriptStatus.error:
            logger.error(
                "AssemblyAI transcription failed",
                extra={"operation_id": operation_id, "error": transcript.error},
            )
            raise TranscriptionFailedError(transcript.error or "unknown service error")

        if not transcript.text:
            raise TranscriptionFailedError("Transcription returned no text")

        words = [
            Word(
                text=w.text,
                start_ms=w.start or 0,
                end_ms=w.end or 0,
                speaker_tag=speaker_tag(getattr(w, "speaker", None)),
                confidence=w.confidence,
            )
            for w in (transcript.words or [])
        ]

        logger.info(
            "Audio transcription successful",
            extra={"operation_id": operation_id, "word_count": len(words)},
        )
        return TranscriptionResult(
            text=transcript.text,
            words=words,
            confidence=transcript.confidence,
            operation_id=operation_id,
        )

    async def _wait_for_completion(self, transcript: aai.Transcript) -> aai.Transcript:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.operation_timeout_seconds

        while transcript.status not in _FINISHED:
            if loop.time() >= deadline:
                logger.error(
                    "Transcription timed out",
                    extra={
                        "operation_id": transcript.id,
                        "timeout": self._config.operation_timeout_seconds,
                    },
                )
                raise TranscriptionTimeoutError(
                    transcript.id, self._config.operation_timeout_seconds
                )
            await asyncio.sleep(self._config.poll_interval_seconds)
            try:
                transcript = await asyncio.to_thread(aai.Transcript.get_by_id, transcript.id)
            except Exception as e:
                logger.exception(
                    "AssemblyAI status poll failed", extra={"operation_id": transcript.id}
                )
                raise _service_error("status poll failed", e) from e

        return transcript
