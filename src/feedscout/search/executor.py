"""Search routine: one grounded LLM search per agent, saved to the feed."""

from ..async_queue.store import SearchStore
from ..errors import AgentInactiveError, AgentNotFoundError, SearchExecutionError
from ..llm.gemini import GeminiClient
from ..utils.logging import get_logger
from .base import SearchExecutor
from .models import SearchResponse
from .parsing import parse_search_results
from .prompts import build_search_prompt

logger = get_logger(__name__)


class AgentSearchExecutor(SearchExecutor):
    """Run an agent's search prompt through Gemini and store the results."""

    def __init__(self, store: SearchStore, llm: GeminiClient) -> None:
        self.store = store
        self.llm = llm

    async def execute(self, agent_id: str) -> SearchResponse:
        logger.info(f"Starting search execution for agent: {agent_id}")

        agent = self.store.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        if agent.status != "active":
            raise AgentInactiveError(agent_id, agent.status)

        completion = await self.llm.generate_grounded(build_search_prompt(agent))
        if not completion.text and not completion.sources:
            raise SearchExecutionError(f"Empty response from model for agent {agent_id}")

        results = parse_search_results(completion.text, completion.sources, agent.keywords)
        logger.info(f"Search completed for {agent_id}: {len(results)} results found")

        self.store.save_feed_items(agent, results)

        return SearchResponse(
            items=results,
            search_queries=completion.search_queries,
            total_results=len(results),
        )
