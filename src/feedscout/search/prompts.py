"""Prompt templates for grounded topic searches."""

from ..async_queue.store import AgentRecord

SEARCH_PROMPT = """{instructions}

Focus on these sources: {sources}
Keywords to prioritize: {keywords}

For each relevant result found, provide:
1. Title
2. URL
3. Source (e.g., GitHub, Reddit, HackerNews, blog, news)
4. Brief summary (1-2 sentences)
5. Published date (if available)

Format your response as a JSON object with this structure:
{{
  "items": [
    {{
      "title": "...",
      "url": "...",
      "source": "...",
      "summary": "...",
      "published_at": "..."
    }}
  ]
}}

Return ONLY the JSON, no additional text."""


def build_search_prompt(agent: AgentRecord) -> str:
    instructions = agent.master_prompt or f"Search for recent content about: {agent.topic_title}"
    return SEARCH_PROMPT.format(
        instructions=instructions,
        sources=", ".join(agent.sources),
        keywords=", ".join(agent.keywords),
    )
