"""
Maintenance - periodic decay recomputation, hot-chunk promotion, archival
and summary refresh.

Archival is reversible and nothing is ever purged here; deleting a chunk
is always an explicit caller decision.
"""

import asyncio
import time
from datetime import datetime, timedelta

from mnemorecall.config import MaintenanceConfig
from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.models.chunk import AccessStat, DecayUpdateResult, MemoryStats, utcnow
from mnemorecall.models.maintenance import MaintenanceJobResult, MaintenanceStats
from mnemorecall.services.category_manager import CategoryManager
from mnemorecall.services.decay_calculator import DecayCalculator
from mnemorecall.utils.exceptions import MnemoRecallError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

MAX_JOB_HISTORY = 100


class MaintenanceService:
    """
    Maintenance operations over the metadata store.

    Jobs can be run on demand or by the background worker, which runs
    consolidation every decay_interval_hours.
    """

    def __init__(
        self,
        store: MetadataStore,
        decay_calculator: DecayCalculator | None = None,
        category_manager: CategoryManager | None = None,
        config: MaintenanceConfig | None = None,
        summarizer: LLMProvider | None = None,
    ):
        """
        Args:
            store: Metadata store to maintain
            decay_calculator: Decay model
            category_manager: Needed for summarization jobs
            config: Maintenance configuration
            summarizer: Optional LLM that writes category summaries
        """
        self.store = store
        self.decay_calculator = decay_calculator or DecayCalculator()
        self.category_manager = category_manager
        self.config = config or MaintenanceConfig()
        self.summarizer = summarizer

        self._stats = MaintenanceStats()
        self._worker_task: asyncio.Task | None = None

    # ═══════════════════════════════════════════════════════════
    # OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def recompute_decay(self, persist: bool = True) -> DecayUpdateResult:
        """Recompute decay of all active chunks. persist=False is a dry run."""
        result = await self.decay_calculator.update_all_decay_scores(self.store, persist=persist)
        if persist:
            self._stats.last_decay_update = utcnow()
        return result

    async def archive_stale(self, threshold: float | None = None) -> list[str]:
        """
        Archive active chunks below threshold (default: configured archival threshold).

        Returns:
            IDs newly archived by this call
        """
        threshold = (
            self.decay_calculator.config.archival_threshold if threshold is None else threshold
        )
        archived = await self.store.archive_stale_chunks(threshold)
        if archived:
            logger.info(
                f"Archived {len(archived)} stale chunks (threshold={threshold})",
                extra={"archived": len(archived), "threshold": threshold},
            )
        return archived

    async def promote_hot_items(self, hours: float | None = None) -> list[str]:
        """
        Boost the importance of the most accessed chunks in the recent window.

        Args:
            hours: Access window (default hot_item_window_hours)

        Returns:
            IDs whose importance was raised
        """
        hours = self.config.hot_item_window_hours if hours is None else hours
        stats = await self.store.get_access_stats(since=utcnow() - timedelta(hours=hours))

        promoted = []
        for stat in stats[: self.config.hot_item_limit]:
            if await self.store.promote_importance(stat.chunk_id, self.config.hot_item_boost):
                promoted.append(stat.chunk_id)

        if promoted:
            logger.info(
                f"Promoted {len(promoted)} hot chunks accessed in the last {hours}h",
                extra={"promoted": len(promoted), "hours": hours},
            )
        return promoted

    async def archive_unused(self, days: float | None = None) -> list[str]:
        """Archive chunks older than days that were never accessed."""
        days = self.config.unused_archive_days if days is None else days
        return await self.store.archive_unused_chunks(utcnow() - timedelta(days=days))

    async def get_memory_stats(self) -> MemoryStats:
        return await self.store.get_memory_stats()

    async def get_access_stats(self, since: datetime | None = None) -> list[AccessStat]:
        return await self.store.get_access_stats(since=since)

    def get_stats(self) -> MaintenanceStats:
        return self._stats.model_copy(
            update={
                "worker_running": self.is_worker_running(),
                "job_history": list(self._stats.job_history),
            }
        )

    # ═══════════════════════════════════════════════════════════
    # JOBS
    # ═══════════════════════════════════════════════════════════

    def _finish_job(
        self,
        job_name: str,
        start_time: datetime,
        started: float,
        metrics: dict[str, float],
        errors: list[str],
    ) -> MaintenanceJobResult:
        result = MaintenanceJobResult(
            job_name=job_name,
            success=not errors,
            start_time=start_time,
            end_time=utcnow(),
            duration_ms=(time.perf_counter() - started) * 1000,
            metrics=metrics,
            errors=errors,
        )

        self._stats.total_jobs_run += 1
        self._stats.total_errors += len(errors)
        self._stats.job_history.append(result)
        del self._stats.job_history[:-MAX_JOB_HISTORY]

        logger.info(
            f"Maintenance job '{job_name}' finished in {result.duration_ms:.1f}ms "
            f"(success={result.success})",
            extra={"job": job_name, "metrics": metrics, "errors": len(errors)},
        )
        return result

    async def run_consolidation(self) -> MaintenanceJobResult:
        """Recompute decay, promote hot chunks, then archive below the consolidation threshold."""
        start_time, started = utcnow(), time.perf_counter()
        metrics: dict[str, float] = {
            "decay_updated": 0,
            "hot_items_promoted": 0,
            "items_archived": 0,
        }
        errors: list[str] = []

        try:
            decay = await self.recompute_decay(persist=True)
            metrics["decay_updated"] = decay.updated

            promoted = await self.promote_hot_items()
            metrics["hot_items_promoted"] = len(promoted)

            archived = await self.archive_stale(self.config.consolidation_archival_threshold)
            metrics["items_archived"] = len(archived)
            self._stats.last_consolidation = utcnow()
        except MnemoRecallError as e:
            logger.error("Consolidation failed: {error}", error=str(e))
            errors.append(str(e))

        return self._finish_job("consolidate", start_time, started, metrics, errors)

    async def run_reindex(self) -> MaintenanceJobResult:
        """Archive old never-accessed chunks, then compact the store."""
        start_time, started = utcnow(), time.perf_counter()
        metrics: dict[str, float] = {"old_items_archived": 0}
        errors: list[str] = []

        try:
            archived = await self.archive_unused()
            metrics["old_items_archived"] = len(archived)
            await self.store.vacuum()
            self._stats.last_reindex = utcnow()
        except MnemoRecallError as e:
            logger.error("Reindex failed: {error}", error=str(e))
            errors.append(str(e))

        return self._finish_job("reindex", start_time, started, metrics, errors)

    async def run_summarization(self) -> MaintenanceJobResult:
        """Evolve the summary of every category that has items."""
        start_time, started = utcnow(), time.perf_counter()
        metrics: dict[str, float] = {"categories_updated": 0, "items_integrated": 0}
        errors: list[str] = []

        if self.category_manager is None:
            errors.append("No category manager configured")
            return self._finish_job("summarize", start_time, started, metrics, errors)

        for category in await self.store.list_categories():
            if category.chunk_count == 0:
                continue
            try:
                result = await self.category_manager.evolve_summary(
                    category.name, summarizer=self.summarizer
                )
            except MnemoRecallError as e:
                logger.error(
                    "Summary evolution failed for {category}: {error}",
                    category=category.name,
                    error=str(e),
                )
                errors.append(f"{category.name}: {e}")
                continue

            if result is not None and result.items_integrated:
                metrics["categories_updated"] += 1
                metrics["items_integrated"] += result.items_integrated

        self._stats.last_summarization = utcnow()
        return self._finish_job("summarize", start_time, started, metrics, errors)

    # ═══════════════════════════════════════════════════════════
    # BACKGROUND WORKER
    # ═══════════════════════════════════════════════════════════

    def is_worker_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start_background_worker(self, interval_hours: float | None = None) -> None:
        """
        Start the periodic consolidation worker (no-op if already running).

        Args:
            interval_hours: Hours between runs (default decay_interval_hours)
        """
        if not self.is_worker_running():
            hours = self.config.decay_interval_hours if interval_hours is None else interval_hours
            self._worker_task = asyncio.create_task(self._maintenance_worker(hours))

    def stop_background_worker(self) -> None:
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()

    async def _maintenance_worker(self, interval_hours: float) -> None:
        while True:
            try:
                logger.info("Starting periodic maintenance")
                await self.run_consolidation()
            except asyncio.CancelledError:
                logger.info("Background maintenance worker stopped")
                break
            except Exception as e:
                logger.error(f"Error in maintenance worker: {e}")

            try:
                await asyncio.sleep(interval_hours * 3600)
            except asyncio.CancelledError:
                logger.info("Background maintenance worker stopped")
                break

    async def close(self) -> None:
        """Stop the worker and wait for it to finish."""
        self.stop_background_worker()
        if self._worker_task:
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None
