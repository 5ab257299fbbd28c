"""
Temporal decay of chunk relevance.

decay_score = clamp(age_factor * frequency_factor * recency_boost, 0, 1)

- age_factor: 0.5 ** (age_days / half_life_days)
- frequency_factor: accesses per month over the expected rate, clipped to
  [1.0, max_frequency_boost] so frequent use slows decay but rare use never
  speeds it up
- recency_boost: recency_boost_multiplier if accessed within
  recency_boost_days, else 1.0
"""

import time
from datetime import datetime, timedelta, timezone

from mnemorecall.config import DecayConfig
from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.models.chunk import ChunkMetadata, DecayBreakdown, DecayUpdateResult, utcnow
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

_SECONDS_PER_DAY = 86400.0
_DAYS_PER_MONTH = 30.0


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from earlier to later (naive datetimes are taken as UTC)."""
    return (_as_utc(later) - _as_utc(earlier)).total_seconds() / _SECONDS_PER_DAY


class DecayCalculator:
    """Computes decay scores from chunk age and access history."""

    def __init__(self, config: DecayConfig | None = None):
        self.config = config or DecayConfig()

    def _age_factor(self, age_days: float) -> float:
        return 0.5 ** (age_days / self.config.half_life_days)

    def _frequency_factor(self, access_count: int, age_days: float) -> float:
        months = max(age_days / _DAYS_PER_MONTH, 1.0)
        ratio = (access_count / months) / self.config.expected_accesses_per_month
        return min(max(ratio, 1.0), self.config.max_frequency_boost)

    def _recency_boost(self, last_accessed_at: datetime | None, now: datetime) -> float:
        if last_accessed_at is None:
            return 1.0
        if days_between(last_accessed_at, now) <= self.config.recency_boost_days:
            return self.config.recency_boost_multiplier
        return 1.0

    def get_decay_breakdown(
        self, metadata: ChunkMetadata, now: datetime | None = None
    ) -> DecayBreakdown:
        """Compute the individual factors and the resulting decay score."""
        now = now or utcnow()
        age_days = max(days_between(metadata.created_at, now), 0.0)

        age_factor = self._age_factor(age_days)
        frequency_factor = self._frequency_factor(metadata.access_count, age_days)
        recency_boost = self._recency_boost(metadata.last_accessed_at, now)

        score = min(max(age_factor * frequency_factor * recency_boost, 0.0), 1.0)

        return DecayBreakdown(
            chunk_id=metadata.chunk_id,
            age_days=age_days,
            age_factor=age_factor,
            frequency_factor=frequency_factor,
            recency_boost=recency_boost,
            decay_score=score,
        )

    def calculate_decay_score(self, metadata: ChunkMetadata, now: datetime | None = None) -> float:
        """Decay score of one chunk in [0, 1]."""
        return self.get_decay_breakdown(metadata, now).decay_score

    def calculate_batch_decay_scores(
        self, chunks: list[ChunkMetadata], now: datetime | None = None
    ) -> dict[str, float]:
        """Decay scores keyed by chunk id, all evaluated at the same instant."""
        now = now or utcnow()
        return {chunk.chunk_id: self.calculate_decay_score(chunk, now) for chunk in chunks}

    def get_archival_candidates(
        self, chunks: list[ChunkMetadata], threshold: float | None = None
    ) -> list[ChunkMetadata]:
        """Active chunks whose stored decay score is below the archival threshold."""
        threshold = self.config.archival_threshold if threshold is None else threshold
        return [c for c in chunks if c.decay_score < threshold and not c.is_archived]

    async def update_all_decay_scores(
        self,
        store: MetadataStore,
        persist: bool = True,
        auto_archive: bool = False,
        archival_threshold: float | None = None,
    ) -> DecayUpdateResult:
        """
        Recompute the decay score of every active chunk.

        Args:
            store: Metadata store to read from and write to
            persist: False for a dry run (scores are computed and returned only)
            auto_archive: Archive chunks that fall below the threshold afterwards
            archival_threshold: Overrides the configured archival threshold

        Returns:
            DecayUpdateResult with counts, timing and the computed scores
        """
        start = time.perf_counter()

        chunks = await store.get_all_chunk_metadata(include_archived=False)
        scores = self.calculate_batch_decay_scores(chunks)

        updated = 0
        archived_ids: list[str] = []
        if persist:
            updated = await store.bulk_update_decay_scores(scores)
            if auto_archive:
                threshold = (
                    self.config.archival_threshold
                    if archival_threshold is None
                    else archival_threshold
                )
                archived_ids = await store.archive_stale_chunks(threshold)

        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"Decay recomputed for {len(scores)} chunks "
            f"(persisted={persist}, archived={len(archived_ids)}) in {duration_ms:.1f}ms",
            extra={"chunks": len(scores), "persist": persist, "archived": len(archived_ids)},
        )

        return DecayUpdateResult(
            updated=updated,
            archived=len(archived_ids),
            archived_ids=archived_ids,
            duration_ms=duration_ms,
            persisted=persist,
            scores=scores,
        )

    def simulate_decay(
        self,
        initial_importance: float,
        access_days: list[int],
        days: int,
        start: datetime | None = None,
    ) -> list[tuple[int, float]]:
        """
        Simulate the decay curve of a fresh chunk.

        Args:
            initial_importance: Importance of the simulated chunk
            access_days: Day offsets on which the chunk is accessed (repeats allowed)
            days: Number of days to simulate (inclusive of day 0)
            start: Creation instant (default now)

        Returns:
            (day, decay_score) pairs for day 0..days
        """
        start = start or utcnow()
        chunk = ChunkMetadata(
            chunk_id="simulation",
            created_at=start,
            updated_at=start,
            importance=initial_importance,
        )

        curve = []
        for day in range(days + 1):
            instant = start + timedelta(days=day)
            hits = access_days.count(day)
            if hits:
                chunk.access_count += hits
                chunk.last_accessed_at = instant
            curve.append((day, self.calculate_decay_score(chunk, instant)))
        return curve
