"""Core business logic for transcript building."""

import re

from medscribe.config import SpeakerConfig

from .models import TranscriptionResult, Word

_SPACE_RUN = re.compile(r"[ \t\f\v]+")
_BLANK_LINE_RUN = re.compile(r"\n\s*\n+")


class TranscriptBuilder:
    """Builds speaker-labelled transcripts from recognized words."""

    def __init__(self, speakers: SpeakerConfig | None = None):
        self._speakers = speakers or SpeakerConfig()

    def build(self, result: TranscriptionResult) -> str:
        """
        Renders a transcription result as one line per speaker run.

        Words are grouped into contiguous runs of the same speaker tag and a
        label is emitted once at every run boundary. Words without a tag stay
        in the current run. When the service returned no word tokens the
        plain text is used unlabelled.

        Args:
            result: Output of the transcription service.

        Returns:
            The normalized transcript text.
        """
        if not result.words:
            return normalize_whitespace(result.text)
        return normalize_whitespace(self._render_runs(result.words))

    def _render_runs(self, words: list[Word]) -> str:
        labels: dict[int, str] = {}
        lines: list[str] = []
        current_tag: int | None = None
        current_words: list[str] = []

        for word in words:
            if word.speaker_tag is not None and word.speaker_tag != current_tag:
                if current_words:
                    lines.append(self._line(labels, current_tag, current_words))
                current_tag = word.speaker_tag
                current_words = []
            current_words.append(word.text)

        if current_words:
            lines.append(self._line(labels, current_tag, current_words))
        return "\n".join(lines)

    def _line(self, labels: dict[int, str], tag: int | None, words: list[str]) -> str:
        text = " ".join(words)
        if tag is None:
            return text
        return f"{self._label_for(labels, tag)}: {text}"

    def _label_for(self, labels: dict[int, str], tag: int) -> str:
        """First tag heard is the primary speaker, every later tag the secondary one."""
        if tag not in labels:
            labels[tag] = (
                self._speakers.primary_label
                if not labels
                else self._speakers.secondary_label
            )
        return labels[tag]


def normalize_whitespace(text: str) -> str:
    """Collapses repeated spaces within lines and runs of blank lines."""
    text = _BLANK_LINE_RUN.sub("\n", text)
    lines = [_SPACE_RUN.sub(" ", line).strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)
