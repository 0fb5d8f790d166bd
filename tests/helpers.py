"""Test doubles: a controllable clock, a stub search routine and queue builders."""

import asyncio
from typing import Iterable, List, Optional

from feedscout.async_queue.job_queue import DurableSearchQueue
from feedscout.async_queue.rate_limited import RateLimitedQueue
from feedscout.async_queue.store import AgentRecord, SearchStore
from feedscout.search.base import SearchExecutor
from feedscout.search.models import SearchResponse


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class StubExecutor(SearchExecutor):
    """Search routine that succeeds with a fixed count unless the agent is listed as failing."""

    def __init__(self, total_results: int = 3, failing: Iterable[str] = ()):
        self.total_results = total_results
        self.failing = set(failing)
        self.calls: List[str] = []

    async def execute(self, agent_id: str) -> SearchResponse:
        self.calls.append(agent_id)
        if agent_id in self.failing:
            raise RuntimeError(f"search failed for {agent_id}")
        return SearchResponse(total_results=self.total_results)


def make_agent(index: int, status: str = "active") -> AgentRecord:
    return AgentRecord(
        agent_id=f"agent-{index}",
        user_id="user-1",
        topic_id=f"topic-{index}",
        name=f"Agent {index}",
        topic_title=f"Topic {index}",
        master_prompt="Find recent articles",
        keywords=["python", "async"],
        status=status,
    )


def build_queue(
    store: SearchStore,
    executor: SearchExecutor,
    clock: FakeClock,
    rate_limit: int = 60,
    max_retries: int = 3,
    llm_queue: Optional[RateLimitedQueue] = None,
) -> DurableSearchQueue:
    llm_queue = llm_queue or RateLimitedQueue(
        max_requests=60,
        window=60.0,
        safety_buffer=0.1,
        backoff_base=1.0,
        backoff_max=30.0,
        sleep=clock.sleep,
        clock=clock,
    )
    return DurableSearchQueue(
        store,
        executor,
        llm_queue,
        rate_limit=rate_limit,
        max_retries=max_retries,
        search_retries=0,
        sleep=clock.sleep,
        clock=clock,
    )
