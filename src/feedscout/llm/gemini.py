"""Gemini client for search-grounded generation.

The client posts a single prompt to the ``generateContent`` endpoint with
the Google Search tool enabled and returns the answer text together with
the grounding sources and the web queries the model issued. Only a
connection that could not be opened is retried here, a few times with
exponential wait. Every answered request, 429 and 5xx included, is raised
to the caller so that retries go back through admission control.
Admission control against the provider quota is not done here: callers run
this through the shared rate-limited queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config.settings import settings
from ..errors import LLMConfigurationError
from ..utils.logging import get_logger

logger = get_logger(__name__)


def _is_connect_failure(error: BaseException) -> bool:
    return isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout))


@dataclass
class GroundedCompletion:
    """Answer text plus the grounding metadata returned with it."""

    text: str
    sources: List[Dict[str, Any]] = field(default_factory=list)
    search_queries: List[str] = field(default_factory=list)


class GeminiClient:
    """Thin async wrapper around the Gemini REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout or settings.gemini_timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_connect_failure),
        reraise=True,
    )
    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.post(
            self.endpoint,
            headers={"x-goog-api-key": self.api_key or "", "Content-Type": "application/json"},
            json=payload,
        )
        response.raise_for_status()
        return response.json()

    async def generate_grounded(self, prompt: str, max_output_tokens: int = 4096) -> GroundedCompletion:
        """Generate an answer with Google Search grounding enabled."""
        if not self.api_key:
            raise LLMConfigurationError("Gemini API key not configured")

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [{"google_search": {}}],
            "generationConfig": {"temperature": 0.2, "maxOutputTokens": max_output_tokens},
        }
        logger.debug(f"Calling Gemini model {self.model}")
        data = await self._post(payload)
        return self._parse_completion(data)

    @staticmethod
    def _parse_completion(data: Dict[str, Any]) -> GroundedCompletion:
        candidates = data.get("candidates") or []
        if not candidates:
            return GroundedCompletion(text="")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)

        grounding = candidate.get("groundingMetadata") or {}
        sources = [
            {"title": chunk["web"].get("title"), "uri": chunk["web"].get("uri")}
            for chunk in grounding.get("groundingChunks") or []
            if chunk.get("web")
        ]
        return GroundedCompletion(
            text=text,
            sources=sources,
            search_queries=list(grounding.get("webSearchQueries") or []),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
