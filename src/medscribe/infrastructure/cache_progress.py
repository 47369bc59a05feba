"""Progress reporter backed by the cache."""

from medscribe.domain.models import PipelineStage, utc_now
from medscribe.logging import setup_logging

from .interfaces import CacheService, ProgressReporter

logger = setup_logging()


def progress_key(recording_id: str) -> str:
    return f"progress:{recording_id}"


class CacheProgressReporter(ProgressReporter):
    """Writes the latest stage of each recording's job to the cache and the log."""

    def __init__(self, cache: CacheService, ttl_seconds: int):
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    async def report(
        self, recording_id: str, stage: PipelineStage, detail: str | None = None
    ) -> None:
        entry = {
            "stage": stage.value,
            "progress": stage.progress,
            "updated_at": utc_now().isoformat(),
        }
        if detail:
            entry["detail"] = detail

        logger.info(
            "Pipeline progress",
            extra={
                "recording_id": recording_id,
                "stage": stage.value,
                "progress": stage.progress,
            },
        )
        await self._cache.set(progress_key(recording_id), entry, self._ttl_seconds)

    async def get(self, recording_id: str) -> dict | None:
        return await self._cache.get(progress_key(recording_id))

    async def clear(self, recording_id: str) -> None:
        await self._cache.delete(progress_key(recording_id))
