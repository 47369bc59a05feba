"""Consultation summarization with a rule-based fallback."""

import re

from medscribe.config import SummaryConfig, SummarySection
from medscribe.exceptions import SummarizationFailedError, error_kind
from medscribe.infrastructure.interfaces.llm_service import LLMService
from medscribe.logging import setup_logging

from .models import SessionInfo, SummaryOutcome
from .prompts import build_summary_prompt

logger = setup_logging()

SUMMARY_TITLE = "# Medical Consultation Summary"
NOT_SPECIFIED = "Not specified"
GENERATION_FAILED_MESSAGE = (
    "Summary generation failed. Please review the transcript directly."
)

_SENTENCE_BOUNDARY = re.compile(r"[.!?]\s+|\n+")


class Summarizer:
    """Produces a structured summary, never failing the job over it."""

    def __init__(self, llm_service: LLMService, config: SummaryConfig | None = None):
        self._llm = llm_service
        self._config = config or SummaryConfig()

    async def summarize(
        self,
        transcript: str,
        session_info: SessionInfo | None = None,
        recording_id: str | None = None,
    ) -> SummaryOutcome:
        """
        Summarizes a transcript with the language model.

        Any model failure, including rejected credentials and empty output,
        switches to the keyword fallback. When the fallback also breaks the
        summary states that generation failed.

        Args:
            transcript: Speaker-labelled transcript text.
            session_info: Optional session and patient details for the prompt.
            recording_id: Used for log context only.

        Returns:
            SummaryOutcome with the text and which path produced it.
        """
        prompt = build_summary_prompt(transcript, session_info)
        try:
            text = await self._llm.generate(prompt)
            if not text or not text.strip():
                raise SummarizationFailedError("Language model returned an empty summary")
            logger.info(
                "Summary generated",
                extra={"recording_id": recording_id, "summary_length": len(text)},
            )
            return SummaryOutcome(text=text.strip(), source="llm")
        except Exception as e:
            logger.warning(
                "Summarization failed, using keyword fallback",
                extra={
                    "recording_id": recording_id,
                    "error_kind": error_kind(e).value,
                    "error": str(e),
                },
            )

        try:
            return SummaryOutcome(text=self.fallback_summary(transcript), source="fallback")
        except Exception:
            logger.exception(
                "Fallback summarization failed", extra={"recording_id": recording_id}
            )
            return SummaryOutcome(text=GENERATION_FAILED_MESSAGE, source="unavailable")

    def fallback_summary(self, transcript: str) -> str:
        """
        Builds a summary from transcript sentences that mention section keywords.

        Every configured section header is always present; sections without a
        matching sentence read "Not specified".
        """
        sentences = split_sentences(transcript, self._config.min_sentence_length)
        parts = [SUMMARY_TITLE, ""]
        matched_any = False

        for section in self._config.fallback_sections:
            content = extract_section(sentences, section)
            matched_any = matched_any or bool(content)
            parts.extend([f"## {section.title}", content or NOT_SPECIFIED, ""])

        if not matched_any:
            parts[1:1] = [GENERATION_FAILED_MESSAGE, ""]
        return "\n".join(parts).rstrip() + "\n"


def split_sentences(transcript: str, min_length: int) -> list[str]:
    """Splits on sentence punctuation and line breaks, dropping short fragments."""
    sentences = (s.strip() for s in _SENTENCE_BOUNDARY.split(transcript))
    return [s for s in sentences if len(s) > min_length]


def extract_section(sentences: list[str], section: SummarySection) -> str:
    """Joins the sentences that contain any of the section's keywords."""
    keywords = [k.lower() for k in section.keywords]
    matches = [s for s in sentences if any(k in s.lower() for k in keywords)]
    return ". ".join(matches)
