"""Turn a grounded LLM completion into search results."""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from ..utils.logging import get_logger
from .models import SearchResult

logger = get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

_SOURCE_TYPES = [
    ("github.com", "GitHub"),
    ("reddit.com", "Reddit"),
    ("news.ycombinator.com", "HackerNews"),
    ("stackoverflow.com", "StackOverflow"),
    ("medium.com", "Medium"),
    ("dev.to", "Dev.to"),
    ("youtube.com", "YouTube"),
    ("twitter.com", "Twitter"),
    ("x.com", "Twitter"),
]

_NEWS_DOMAINS = ("nytimes.com", "bbc.com", "cnn.com", "reuters.com")


def extract_source_type(url: str) -> str:
    """Classify a URL by the site it points at."""
    for needle, label in _SOURCE_TYPES:
        if needle in url:
            return label
    if any(domain in url for domain in _NEWS_DOMAINS):
        return "News"
    return "Web"


def calculate_relevance_score(
    title: Optional[str],
    summary: Optional[str],
    keywords: Sequence[str],
) -> float:
    """Fraction of topic keywords found in the title and summary."""
    if not keywords:
        return 0.5
    text = f"{title or ''} {summary or ''}".lower()
    matches = sum(1 for k in keywords if k.lower() in text)
    return min(matches / len(keywords), 1.0)


def parse_search_results(
    text: str,
    sources: Sequence[Dict[str, Any]],
    keywords: Sequence[str] = (),
) -> List[SearchResult]:
    """
    Extract results from the model's answer.

    The model is asked for a JSON object with an ``items`` array. When the
    answer holds no such object, the grounding sources attached to the
    completion are used instead, with a neutral relevance score.

    Args:
        text: Raw completion text
        sources: Grounding sources (``title``/``uri``/``snippet``)
        keywords: Topic keywords used for scoring

    Returns:
        Parsed results (possibly empty)
    """
    match = _JSON_OBJECT.search(text or "")
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse search results JSON: {e}")
            parsed = None
        if isinstance(parsed, dict) and isinstance(parsed.get("items"), list):
            return [
                SearchResult(
                    title=item.get("title") or "Untitled",
                    url=item.get("url") or "",
                    source=item.get("source") or "Unknown",
                    summary=item.get("summary"),
                    published_at=item.get("published_at"),
                    relevance_score=calculate_relevance_score(
                        item.get("title"), item.get("summary"), keywords
                    ),
                )
                for item in parsed["items"]
                if isinstance(item, dict)
            ]

    results: List[SearchResult] = []
    for index, source in enumerate(sources):
        url = source.get("uri") or source.get("url") or ""
        results.append(
            SearchResult(
                title=source.get("title") or f"Result {index + 1}",
                url=url,
                source=extract_source_type(url),
                summary=source.get("snippet") or source.get("content"),
                relevance_score=0.5,
            )
        )
    return results
