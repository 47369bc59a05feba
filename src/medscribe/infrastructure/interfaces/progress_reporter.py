"""Abstract interface for pipeline progress reporting."""

from abc import ABC, abstractmethod

from medscribe.domain.models import PipelineStage


class ProgressReporter(ABC):
    """Publishes advisory stage progress for observers."""

    @abstractmethod
    async def report(
        self, recording_id: str, stage: PipelineStage, detail: str | None = None
    ) -> None:
        """
        Records that a recording's job reached a stage.

        Must not raise; progress is telemetry, not state.
        """
        pass

    @abstractmethod
    async def get(self, recording_id: str) -> dict | None:
        """Returns the last reported stage and percentage, if known."""
        pass

    @abstractmethod
    async def clear(self, recording_id: str) -> None:
        """Forgets a recording's progress."""
        pass
