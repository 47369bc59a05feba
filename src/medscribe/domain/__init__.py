"""Domain layer exports."""

from .audio_combiner import AudioCombiner, chunk_file_name, parse_chunk_sequence
from .audio_optimizer import AudioOptimizer, build_filter_chain
from .html_formatter import ResultFormatter, markup_to_html
from .models import (
    AudioChunk,
    Capability,
    ChunkAck,
    JobAccepted,
    PatientInfo,
    PipelineResult,
    PipelineStage,
    RecordingFilter,
    RecordingMetadata,
    RecordingProgress,
    RecordingResults,
    RecordingStatus,
    ResultArtifacts,
    SessionInfo,
    SummaryOutcome,
    TranscriptionJob,
    TranscriptionResult,
    Word,
)
from .prompts import MEDICAL_VOCABULARY, build_summary_prompt
from .summarizer import Summarizer
from .transcript_builder import TranscriptBuilder

__all__ = [
    "AudioChunk",
    "AudioCombiner",
    "AudioOptimizer",
    "Capability",
    "ChunkAck",
    "JobAccepted",
    "MEDICAL_VOCABULARY",
    "PatientInfo",
    "PipelineResult",
    "PipelineStage",
    "RecordingFilter",
    "RecordingMetadata",
    "RecordingProgress",
    "RecordingResults",
    "RecordingStatus",
    "ResultArtifacts",
    "ResultFormatter",
    "SessionInfo",
    "Summarizer",
    "SummaryOutcome",
    "TranscriptBuilder",
    "TranscriptionJob",
    "TranscriptionResult",
    "Word",
    "build_filter_chain",
    "build_summary_prompt",
    "chunk_file_name",
    "markup_to_html",
    "parse_chunk_sequence",
]
