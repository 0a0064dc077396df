"""
RAG Chain Module

Direct RAG, a single pass per question:

    RETRIEVE -> ASSEMBLE -> GENERATE -> DONE

1. Retrieve documents for the raw query
2. No documents: answer with the configured no-results message, no LLM call
3. Assemble system prompt (instructions + numbered context) and bounded history
4. One completion call; an empty reply becomes the fallback message

Design Rationale:
- Retrieval and generation errors propagate so the caller can report a
  failure instead of a fabricated answer
- The retrieved documents are returned with the answer for source attribution
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from config.settings import Settings
from rag_assistant.context import ContextAssembler
from rag_assistant.llm_service import LLMService
from rag_assistant.memory import ChatMessage
from rag_assistant.query_rewriter import LLMQueryRewriter
from rag_assistant.retriever import RetrievedDocument, Retriever, build_retriever

logger = logging.getLogger(__name__)


@dataclass
class RAGResponse:
    """
    Complete response from the RAG chain.

    Attributes:
        answer: The generated answer text
        sources: Documents the answer was grounded on
        query: The original query
        metadata: Timings, chunk count, model, token usage
    """

    answer: str
    sources: List[RetrievedDocument]
    query: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def source_previews(self, max_chars: int = 200) -> List[Dict[str, Any]]:
        return [doc.to_source_preview(max_chars) for doc in self.sources]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "answer": self.answer,
            "sources": self.source_previews(),
            "query": self.query,
            "metadata": self.metadata,
        }

    def source_labels(self) -> List[str]:
        """Distinct "source - section" labels, in retrieval order."""
        labels = []
        for doc in self.sources:
            label = doc.metadata.source
            if doc.metadata.section:
                label += f" - {doc.metadata.section}"
            if label and label not in labels:
                labels.append(label)
        return labels

    def format_with_sources(self) -> str:
        """Format answer with source citations, one line per distinct source."""
        lines = self.source_labels()
        if not lines:
            return self.answer

        source_text = "\n\n📚 **Sources:**\n" + "".join(f"- {line}\n" for line in lines)
        return self.answer + source_text


class RAGChain:
    """
    Main RAG Chain that orchestrates retrieval and generation.

    Example:
        chain = create_rag_chain(settings)
        response = await chain.answer("How do I export my notes?", history)
        print(response.answer)
        print(response.source_previews())
    """

    def __init__(
        self,
        retriever: Retriever,
        llm_service: LLMService,
        assembler: ContextAssembler,
        no_results_message: str,
        fallback_error_message: str,
        logger: Optional[logging.Logger] = None,
    ):
        self.retriever = retriever
        self.llm_service = llm_service
        self.assembler = assembler
        self.no_results_message = no_results_message
        self.fallback_error_message = fallback_error_message
        self.logger = logger or logging.getLogger(__name__)

    async def answer(
        self,
        query: str,
        history: Sequence[ChatMessage] = (),
    ) -> RAGResponse:
        """
        Answer a question from the knowledge base.

        Args:
            query: User's question
            history: Prior conversation, oldest first; only the last N are used

        Returns:
            RAGResponse with answer, sources, and metadata

        Raises:
            EmbeddingError / SearchError / GenerationError
        """
        start_time = time.time()

        documents = await self.retriever.retrieve(query)
        retrieval_time = time.time() - start_time

        if not documents:
            self.logger.info("No documents passed retrieval, returning no-results message")
            return RAGResponse(
                answer=self.no_results_message,
                sources=[],
                query=query,
                metadata={
                    "retrieval_time": retrieval_time,
                    "total_time": time.time() - start_time,
                    "chunks_found": 0,
                },
            )

        messages = self.assembler.build_messages(query, documents, history)

        generation_start = time.time()
        llm_response = await self.llm_service.complete(messages)
        generation_time = time.time() - generation_start

        answer = (llm_response.content or "").strip()
        if not answer:
            self.logger.warning("Model returned an empty answer, using fallback message")
            answer = self.fallback_error_message

        total_time = time.time() - start_time
        self.logger.info(
            f"RAG query completed in {total_time:.2f}s "
            f"(retrieval: {retrieval_time:.2f}s, generation: {generation_time:.2f}s)"
        )

        return RAGResponse(
            answer=answer,
            sources=list(documents),
            query=query,
            metadata={
                "retrieval_time": retrieval_time,
                "generation_time": generation_time,
                "total_time": total_time,
                "chunks_found": len(documents),
                "model": llm_response.model,
                "usage": llm_response.usage,
            },
        )


def create_rag_chain(
    settings: Settings,
    retriever: Optional[Retriever] = None,
    llm_service: Optional[LLMService] = None,
) -> RAGChain:
    """
    Factory function to create a fully configured RAG chain.

    Args:
        settings: Application settings
        retriever: Optional pre-built retriever (shared with the agent)
        llm_service: Optional pre-built answer-model service

    Returns:
        Configured RAGChain instance
    """
    llm_service = llm_service or LLMService(settings.llm)
    retriever = retriever or build_retriever(settings)
    if settings.chat.rewrite_queries:
        # same clients, rewriting only on this protocol's path
        retriever = Retriever(
            embedding_service=retriever.embedding_service,
            vector_store=retriever.vector_store,
            config=retriever.config,
            namespace=retriever.namespace,
            query_transform=LLMQueryRewriter(llm_service),
        )

    return RAGChain(
        retriever=retriever,
        llm_service=llm_service,
        assembler=ContextAssembler(
            system_prompt=settings.chat.system_prompt,
            max_conversation_history=settings.chat.max_conversation_history,
        ),
        no_results_message=settings.chat.no_results_message,
        fallback_error_message=settings.chat.fallback_error_message,
    )
