"""Durable search-job queue and its draining loop."""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, List, Optional

from ..config.settings import settings
from ..search.base import SearchExecutor
from ..utils.logging import get_logger
from .job_models import JobStatus, SearchJob
from .progress import QueueRunSummary, QueueStats
from .rate_limited import RateLimitedQueue
from .store import SearchStore

logger = get_logger(__name__)


class DurableSearchQueue:
    """
    Persisted queue of per-agent searches.

    Records move ``pending -> processing -> completed``; a failed attempt
    sends a record back to ``pending`` until ``max_retries`` attempts have
    failed, after which it stays ``failed``. The drain loop handles one
    record at a time and paces itself to ``rate_limit`` records per minute.
    Every search also goes through the shared :class:`RateLimitedQueue`,
    so both governors must admit an item before it runs.

    Only one drainer is expected, but the claim step is a conditional
    update, so a second drainer can never run a record twice.

    Example:
        >>> queue = DurableSearchQueue(store, executor, llm_queue)
        >>> await queue.enqueue_agents(["agent-a", "agent-b"])
        >>> summary = await queue.process_queue()
    """

    def __init__(
        self,
        store: SearchStore,
        executor: SearchExecutor,
        llm_queue: RateLimitedQueue,
        rate_limit: Optional[int] = None,
        max_retries: Optional[int] = None,
        search_retries: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize durable queue.

        Args:
            store: Persistence for agents and queue records
            executor: Search routine run once per attempt
            llm_queue: Shared in-process rate-limited queue
            rate_limit: Records processed per minute
            max_retries: Attempts allowed for newly enqueued records
            search_retries: In-process retries inside a single attempt
            sleep: Coroutine function used for pacing
            clock: Monotonic time source in seconds
        """
        self.store = store
        self.executor = executor
        self.llm_queue = llm_queue
        self.rate_limit = rate_limit or settings.queue_rate_limit
        self.max_retries = max_retries or settings.queue_max_retries
        self.search_retries = settings.search_retries if search_retries is None else search_retries
        self._sleep = sleep
        self._clock = clock

    @property
    def interval(self) -> float:
        """Seconds reserved for each record."""
        return 60.0 / self.rate_limit

    async def enqueue_agents(self, agent_ids: List[str]) -> int:
        """Create one pending record per active agent; returns how many were created."""
        logger.info(f"Enqueuing {len(agent_ids)} agents")

        agents = self.store.list_active_agents(agent_ids)
        if not agents:
            logger.warning("No agents found to enqueue")
            return 0

        job_ids = self.store.insert_jobs(agents, max_retries=self.max_retries)
        logger.info(f"Successfully enqueued {len(job_ids)} agents")
        return len(job_ids)

    async def get_next_pending(self) -> Optional[SearchJob]:
        return self.store.get_oldest_pending()

    async def mark_completed(self, job_id: str, results_count: int) -> Optional[SearchJob]:
        return self.store.complete_job(job_id, results_count)

    async def mark_failed(self, job_id: str, error_message: str) -> Optional[SearchJob]:
        job = self.store.fail_job(job_id, error_message)
        if job is None:
            return None
        fields = {"job_id": job_id, "agent_id": job.agent_id, "retry_count": job.retry_count}
        if job.status == JobStatus.PENDING:
            logger.info(
                f"Queue item {job_id} failed, will retry (attempt {job.retry_count}/{job.max_retries})",
                extra=fields,
            )
        else:
            logger.error(
                f"Queue item {job_id} failed permanently after {job.retry_count} attempts",
                extra=fields,
            )
        return job

    async def process_queue_item(self, job: SearchJob) -> Optional[JobStatus]:
        """
        Run the search for one record and record the outcome.

        Returns:
            The record's new status, or None if another drainer claimed it first
        """
        claimed = self.store.claim_job(job.id)
        if claimed is None:
            logger.warning(
                f"Queue item {job.id} was claimed elsewhere, skipping", extra={"job_id": job.id}
            )
            return None

        fields = {"job_id": job.id, "agent_id": job.agent_id}
        logger.info(f"Processing queue item {job.id} for agent {job.agent_id}", extra=fields)

        try:
            response = await self.llm_queue.add(
                job.agent_id,
                lambda: self.executor.execute(job.agent_id),
                max_retries=self.search_retries,
            )
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Queue item {job.id} failed: {message}", extra=fields)
            updated = await self.mark_failed(job.id, message)
            return updated.status if updated else None

        updated = await self.mark_completed(job.id, response.total_results)
        logger.info(
            f"Queue item {job.id} completed: {response.total_results} results",
            extra={**fields, "results_count": response.total_results},
        )
        return updated.status if updated else None

    async def process_queue(self) -> QueueRunSummary:
        """
        Drain pending records until none remain.

        A record is counted once, when it reaches ``completed`` or
        ``failed``. Attempts that send it back to ``pending`` are not
        counted; the record is picked up again later in the same drain.

        Any other error raised while handling a record is written to that
        record as a failed attempt, so the summary always matches the
        stored statuses. If the store rejects that write too, the
        ``StoreError`` ends the drain.
        """
        summary = QueueRunSummary()
        logger.info("Starting queue processing")

        while True:
            job = await self.get_next_pending()
            if job is None:
                logger.info("No more pending items in queue")
                break

            started = self._clock()
            try:
                status = await self.process_queue_item(job)
            except Exception as e:
                # Store trouble after or during the claim. Record it as a failed
                # attempt; if the store cannot take that write either, stop.
                logger.error(
                    f"Failed to process queue item {job.id}: {e}",
                    exc_info=True,
                    extra={"job_id": job.id, "agent_id": job.agent_id},
                )
                updated = await self.mark_failed(job.id, f"Internal error: {e}")
                status = updated.status if updated else None

            if status is not None and status.is_terminal:
                summary.processed += 1
                if status == JobStatus.COMPLETED:
                    summary.completed += 1
                else:
                    summary.failed += 1

                if summary.processed % 10 == 0:
                    logger.info(
                        f"Queue progress: {summary.processed} processed, "
                        f"{summary.completed} completed, {summary.failed} failed"
                    )

            delay = max(0.0, self.interval - (self._clock() - started))
            if delay > 0:
                await self._sleep(delay)

        logger.info(
            f"Queue processing completed: {summary.processed} processed, "
            f"{summary.completed} completed, {summary.failed} failed"
        )
        return summary

    async def get_queue_stats(self) -> QueueStats:
        return QueueStats.from_counts(self.store.count_by_status())

    async def list_items(
        self,
        status: Optional[JobStatus] = None,
        user_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[SearchJob]:
        return self.store.list_jobs(status=status, user_id=user_id, limit=limit)

    async def clear_old_items(self, days_old: Optional[int] = None) -> int:
        """Delete completed records older than ``days_old`` days."""
        days_old = days_old or settings.cleanup_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        deleted = self.store.delete_completed_before(cutoff)
        logger.info(f"Cleared {deleted} old queue items")
        return deleted
