"""
Rate-limited task queues for LLM-backed topic searches.

Two layers cooperate:
- RateLimitedQueue serializes every outbound LLM call under a sliding
  per-minute budget and retries failures with exponential backoff.
- DurableSearchQueue persists one search job per agent and drains them
  one at a time, recording completion or failure per job.

Basic Usage:
    >>> from feedscout.async_queue import RateLimitedQueue
    >>>
    >>> llm_queue = RateLimitedQueue(max_requests=60)
    >>> answer = await llm_queue.add("agent-42", lambda: client.generate_grounded(prompt))

Durable Processing:
    >>> from feedscout.async_queue import DurableSearchQueue, SearchStore
    >>>
    >>> queue = DurableSearchQueue(SearchStore(path), executor, llm_queue)
    >>> await queue.enqueue_agents(agent_ids)
    >>> summary = await queue.process_queue()
    >>> stats = await queue.get_queue_stats()
"""

from .rate_limited import RateLimitedQueue, QueueEntry, QueueStatus, calculate_backoff
from .job_models import JobStatus, SearchJob
from .store import SearchStore, AgentRecord
from .progress import QueueStats, QueueRunSummary, render_queue_stats, render_jobs
from .job_queue import DurableSearchQueue

__all__ = [
    # In-process queue
    "RateLimitedQueue",
    "QueueEntry",
    "QueueStatus",
    "calculate_backoff",

    # Durable queue
    "DurableSearchQueue",
    "JobStatus",
    "SearchJob",
    "SearchStore",
    "AgentRecord",

    # Reporting
    "QueueStats",
    "QueueRunSummary",
    "render_queue_stats",
    "render_jobs",
]
