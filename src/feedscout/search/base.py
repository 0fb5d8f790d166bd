"""Base interface for the search routine run by the durable queue."""

from abc import ABC, abstractmethod

from .models import SearchResponse


class SearchExecutor(ABC):
    """Abstract search routine: one call per queue attempt."""

    @abstractmethod
    async def execute(self, agent_id: str) -> SearchResponse:
        """
        Run a search on behalf of an agent.

        Args:
            agent_id: Agent whose topic and prompt drive the search

        Returns:
            SearchResponse with the saved items and their count

        Raises:
            Exception: Any failure; the caller decides whether to retry
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
