import pytest

from conftest import words_for
from medscribe.config import SpeakerConfig
from medscribe.domain import TranscriptBuilder, TranscriptionResult, Word
from medscribe.domain.transcript_builder import normalize_whitespace


class TestTranscriptBuilder:
    @pytest.fixture
    def builder(self):
        return TranscriptBuilder()

    def test_label_emitted_at_every_speaker_change(self, builder):
        result = TranscriptionResult(text="", words=words_for([1, 1, 2, 2, 1]))

        lines = builder.build(result).splitlines()

        assert lines == [
            "Doctor: word0 word1",
            "Patient: word2 word3",
            "Doctor: word4",
        ]

    def test_first_tag_heard_is_primary_speaker(self, builder):
        result = TranscriptionResult(text="", words=words_for([2, 1, 2]))

        lines = builder.build(result).splitlines()

        assert [line.split(":")[0] for line in lines] == ["Doctor", "Patient", "Doctor"]

    def test_untagged_words_stay_in_current_run(self, builder):
        words = [
            Word(text="Hello", speaker_tag=1),
            Word(text="there", speaker_tag=None),
            Word(text="Hi", speaker_tag=2),
        ]
        result = TranscriptionResult(text="", words=words)

        assert builder.build(result) == "Doctor: Hello there\nPatient: Hi"

    def test_labels_are_configurable(self):
        builder = TranscriptBuilder(SpeakerConfig(primary_label="Clinician", secondary_label="Client"))
        result = TranscriptionResult(text="", words=words_for([1, 2]))

        assert builder.build(result) == "Clinician: word0\nClient: word1"

    def test_plain_text_used_without_words(self, builder):
        result = TranscriptionResult(text="  Just   one\n\n\nspeaker  ")

        assert builder.build(result) == "Just one\nspeaker"


def test_normalize_whitespace_collapses_runs():
    assert normalize_whitespace("a  b\t c\n\n\n d ") == "a b c\nd"
