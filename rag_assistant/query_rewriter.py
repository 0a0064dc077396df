"""
Query rewriting.

Optional stage run by the Retriever before embedding. Turns a conversational
question ("and how much does it cost?") into a standalone search query.
"""

import logging

from rag_assistant.llm_service import LLMService

logger = logging.getLogger(__name__)

REWRITE_PROMPT = (
    "Rewrite the user's message as a short, standalone search query for a "
    "documentation search engine. Keep product names and technical terms. "
    "Reply with the query only."
)


class LLMQueryRewriter:
    """Rewrites queries with a plain completion; falls back to the raw query."""

    def __init__(self, llm_service: LLMService, prompt: str = REWRITE_PROMPT):
        self.llm_service = llm_service
        self.prompt = prompt

    async def transform(self, query: str) -> str:
        response = await self.llm_service.complete([
            {"role": "system", "content": self.prompt},
            {"role": "user", "content": query},
        ])
        rewritten = (response.content or "").strip().strip('"')
        if not rewritten:
            logger.debug("Rewriter returned nothing, keeping the original query")
            return query
        return rewritten
