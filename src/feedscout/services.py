"""Composition root: builds the shared queue, store and search services once."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .async_queue.job_queue import DurableSearchQueue
from .async_queue.rate_limited import RateLimitedQueue
from .async_queue.store import SearchStore
from .config.settings import Settings, settings as default_settings
from .llm.gemini import GeminiClient
from .search.base import SearchExecutor
from .search.executor import AgentSearchExecutor
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide services. Build once at startup and pass by reference."""

    store: SearchStore
    llm_queue: RateLimitedQueue
    executor: SearchExecutor
    search_queue: DurableSearchQueue
    llm: Optional[GeminiClient] = None

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        database_path: Optional[Path] = None,
        executor: Optional[SearchExecutor] = None,
    ) -> "ServiceContainer":
        """
        Wire the application from settings.

        Args:
            config: Settings to read (default: global settings)
            database_path: Override for the SQLite file
            executor: Search routine to use instead of the Gemini-backed one
        """
        config = config or default_settings
        store = SearchStore(database_path or config.database_path)
        llm_queue = RateLimitedQueue(
            max_requests=config.llm_max_requests_per_minute,
            window=config.llm_request_window,
            safety_buffer=config.llm_safety_buffer,
            backoff_base=config.llm_backoff_base,
            backoff_max=config.llm_backoff_max,
            default_max_retries=config.llm_max_retries,
        )

        llm: Optional[GeminiClient] = None
        if executor is None:
            llm = GeminiClient(
                api_key=config.gemini_api_key,
                model=config.gemini_model,
                base_url=config.gemini_base_url,
                timeout=config.gemini_timeout,
            )
            executor = AgentSearchExecutor(store, llm)

        search_queue = DurableSearchQueue(
            store,
            executor,
            llm_queue,
            rate_limit=config.queue_rate_limit,
            max_retries=config.queue_max_retries,
            search_retries=config.search_retries,
        )
        logger.info(f"Services initialized with database {store.db_path}")
        return cls(
            store=store,
            llm_queue=llm_queue,
            executor=executor,
            search_queue=search_queue,
            llm=llm,
        )

    async def run_daily_search(self) -> Dict[str, Any]:
        """Enqueue every active agent, drain the queue and report."""
        agent_ids = self.store.list_active_agent_ids()
        if not agent_ids:
            logger.info("No active agents to process")
            return {"enqueued": 0, "processed": 0, "completed": 0, "failed": 0}

        logger.info(f"Starting daily search for {len(agent_ids)} agents")
        enqueued = await self.search_queue.enqueue_agents(agent_ids)
        summary = await self.search_queue.process_queue()
        stats = await self.search_queue.get_queue_stats()

        return {
            "enqueued": enqueued,
            **summary.to_dict(),
            "queue_stats": stats.to_dict(),
        }

    async def aclose(self) -> None:
        await self.llm_queue.join()
        if self.llm is not None:
            await self.llm.aclose()
        self.store.close()
