"""Search result models."""

from typing import List, Optional
from pydantic import BaseModel, Field


class SearchResult(BaseModel):
    """One piece of content found for a topic."""
    title: str
    url: str
    source: str = "Web"
    summary: Optional[str] = None
    published_at: Optional[str] = None
    relevance_score: float = Field(0.5, ge=0.0, le=1.0)


class SearchResponse(BaseModel):
    """Outcome of a single search execution."""

    items: List[SearchResult] = Field(default_factory=list)
    search_queries: List[str] = Field(default_factory=list)
    total_results: int = Field(0, ge=0)
