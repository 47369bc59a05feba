import pytest

from conftest import FakeLLM
from medscribe.config import SummaryConfig
from medscribe.domain import PatientInfo, SessionInfo, Summarizer, build_summary_prompt
from medscribe.domain.summarizer import (
    GENERATION_FAILED_MESSAGE,
    NOT_SPECIFIED,
    SUMMARY_TITLE,
    split_sentences,
)
from medscribe.exceptions import SummarizationFailedError, UnauthorizedError

TRANSCRIPT = (
    "Doctor: What brings you in today?\n"
    "Patient: I have had a bad headache for three days.\n"
    "Doctor: I prescribed ibuprofen, one dose every eight hours.\n"
    "Doctor: The treatment plan is rest and fluids."
)

SECTION_HEADERS = ["## Chief Complaint", "## Medications", "## Assessment", "## Plan"]


class TestSummarizer:
    @pytest.fixture
    def llm(self):
        return FakeLLM()

    @pytest.fixture
    def summarizer(self, llm):
        return Summarizer(llm, SummaryConfig())

    @pytest.mark.asyncio
    async def test_uses_language_model_output(self, summarizer, llm):
        outcome = await summarizer.summarize(TRANSCRIPT, recording_id="rec-1")

        assert outcome.source == "llm"
        assert outcome.text == llm.text
        assert TRANSCRIPT in llm.prompts[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            SummarizationFailedError("quota exceeded"),
            UnauthorizedError("Gemini"),
            RuntimeError("connection reset"),
        ],
    )
    async def test_falls_back_when_model_fails(self, summarizer, llm, error):
        llm.error = error

        outcome = await summarizer.summarize(TRANSCRIPT)

        assert outcome.source == "fallback"
        assert outcome.text.startswith(SUMMARY_TITLE)
        for header in SECTION_HEADERS:
            assert header in outcome.text

    @pytest.mark.asyncio
    async def test_blank_model_output_falls_back(self, summarizer, llm):
        llm.text = "   \n"

        outcome = await summarizer.summarize(TRANSCRIPT)

        assert outcome.source == "fallback"

    @pytest.mark.asyncio
    async def test_unavailable_when_fallback_breaks(self, summarizer, llm, monkeypatch):
        llm.error = RuntimeError("down")

        def broken(transcript):
            raise RuntimeError("fallback broke")

        monkeypatch.setattr(summarizer, "fallback_summary", broken)

        outcome = await summarizer.summarize(TRANSCRIPT)

        assert outcome.source == "unavailable"
        assert outcome.text == GENERATION_FAILED_MESSAGE


class TestFallbackSummary:
    @pytest.fixture
    def summarizer(self):
        return Summarizer(FakeLLM(), SummaryConfig())

    def test_sections_filled_from_keyword_sentences(self, summarizer):
        summary = summarizer.fallback_summary(TRANSCRIPT)

        chief = summary.split("## Chief Complaint\n")[1].split("\n")[0]
        medications = summary.split("## Medications\n")[1].split("\n")[0]
        plan = summary.split("## Plan\n")[1].split("\n")[0]
        assessment = summary.split("## Assessment\n")[1].split("\n")[0]

        assert "What brings you in today" in chief
        assert "ibuprofen" in medications
        assert "rest and fluids" in plan
        assert assessment == NOT_SPECIFIED
        assert GENERATION_FAILED_MESSAGE not in summary

    def test_nothing_matched_still_has_every_header(self, summarizer):
        summary = summarizer.fallback_summary("Doctor: Hello there, nice weather outside.")

        assert GENERATION_FAILED_MESSAGE in summary
        for header in SECTION_HEADERS:
            assert header in summary
        assert summary.count(NOT_SPECIFIED) == len(SECTION_HEADERS)

    def test_empty_transcript(self, summarizer):
        summary = summarizer.fallback_summary("")

        assert summary.startswith(SUMMARY_TITLE)
        assert GENERATION_FAILED_MESSAGE in summary


def test_split_sentences_drops_short_fragments():
    sentences = split_sentences("Yes. Okay! The headache started on Monday.\nNo", 10)
    assert sentences == ["The headache started on Monday"]


class TestSummaryPrompt:
    def test_includes_patient_details(self):
        session_info = SessionInfo(
            patient_info=PatientInfo(name="Jane Doe", id="P-7", type="follow-up")
        )

        prompt = build_summary_prompt("Doctor: Hi", session_info)

        assert "Jane Doe (ID: P-7)" in prompt
        assert "follow-up" in prompt
        assert "Doctor: Hi" in prompt

    def test_defaults_without_patient(self):
        prompt = build_summary_prompt("Doctor: Hi", None)

        assert "the patient" in prompt
        assert "consultation" in prompt
