"""Core business logic for preparing audio for speech recognition."""

import os
import tempfile

import moviepy

from medscribe.config import AudioConfig
from medscribe.exceptions import AudioOptimizationFailedError
from medscribe.logging import setup_logging

logger = setup_logging()


def build_filter_chain(config: AudioConfig) -> str:
    """Builds the ffmpeg audio filter graph: speech band-pass, gain, silence trim."""
    return ",".join(
        [
            f"highpass=f={config.highpass_hz}",
            f"lowpass=f={config.lowpass_hz}",
            f"volume={config.volume}",
            f"silenceremove=1:0:{config.silence_threshold_db}dB",
        ]
    )


class AudioOptimizer:
    """Converts combined recording audio into compact mono speech audio."""

    def __init__(self, config: AudioConfig | None = None):
        self._config = config or AudioConfig()

    @property
    def content_type(self) -> str:
        return f"audio/{self._config.codec}"

    @property
    def file_extension(self) -> str:
        return self._config.codec

    def optimize(self, audio_data: bytes, recording_id: str = "recording") -> bytes:
        """
        Resamples, filters and losslessly compresses audio.

        Output is mono at the configured sample rate, band-passed to the
        speech range, volume-adjusted and with leading silence removed.
        Identical input and configuration give identical output.

        Args:
            audio_data: Combined audio bytes, normally PCM in a WAV container.
            recording_id: Used for temporary file names and log context.

        Returns:
            The optimized audio bytes.

        Raises:
            AudioOptimizationFailedError: If the audio cannot be decoded or encoded.
        """
        if not audio_data:
            raise AudioOptimizationFailedError("input audio is empty")

        try:
            optimized = self._transcode(audio_data, recording_id)
        except Exception as e:
            logger.exception(
                "Audio optimization failed", extra={"recording_id": recording_id}
            )
            raise AudioOptimizationFailedError(str(e) or type(e).__name__, e) from e

        if not optimized:
            raise AudioOptimizationFailedError("encoder produced no output")

        logger.info(
            "Audio optimized",
            extra={
                "recording_id": recording_id,
                "input_bytes": len(audio_data),
                "output_bytes": len(optimized),
            },
        )
        return optimized

    def _transcode(self, audio_data: bytes, recording_id: str) -> bytes:
        """Runs the ffmpeg conversion through moviepy inside a scratch directory."""
        with tempfile.TemporaryDirectory(prefix="medscribe-") as temp_dir:
            input_path = os.path.join(temp_dir, f"{recording_id}.wav")
            output_path = os.path.join(
                temp_dir, f"{recording_id}-optimized.{self.file_extension}"
            )

            with open(input_path, "wb") as f:
                f.write(audio_data)

            clip = moviepy.AudioFileClip(input_path, fps=self._config.sample_rate)
            try:
                clip.write_audiofile(
                    output_path,
                    fps=self._config.sample_rate,
                    codec=self._config.codec,
                    ffmpeg_params=[
                        "-ac",
                        str(self._config.channels),
                        "-af",
                        build_filter_chain(self._config),
                        "-map_metadata",
                        "-1",
                        "-fflags",
                        "+bitexact",
                    ],
                    logger=None,
                )
            finally:
                clip.close()

            with open(output_path, "rb") as f:
                return f.read()
