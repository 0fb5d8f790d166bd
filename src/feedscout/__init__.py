"""feedscout: topic-driven content discovery backed by a rate-limited LLM search queue."""

__version__ = "0.1.0"
