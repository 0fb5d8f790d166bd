"""Exception hierarchy shared by the queue, store and search layers."""

from typing import Optional


class FeedScoutError(Exception):
    """Base class for all feedscout errors."""


class StoreError(FeedScoutError):
    """A persistence primitive failed."""


class AgentNotFoundError(FeedScoutError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}")


class AgentInactiveError(FeedScoutError):
    def __init__(self, agent_id: str, status: Optional[str] = None):
        self.agent_id = agent_id
        self.status = status
        super().__init__(f"Agent is not active: {agent_id} (status: {status})")


class SearchExecutionError(FeedScoutError):
    """The search routine produced an unusable response."""


class LLMConfigurationError(FeedScoutError):
    """The LLM client is missing credentials or configuration."""
