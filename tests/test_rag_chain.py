"""
Tests for RAG Chain Module

Tests for RAGChain, RAGResponse and the query rewriter.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from config.settings import Settings
from rag_assistant.context import ContextAssembler
from rag_assistant.errors import EmbeddingError, GenerationError
from rag_assistant.llm_service import LLMResponse
from rag_assistant.memory import ChatMessage
from rag_assistant.query_rewriter import LLMQueryRewriter
from rag_assistant.rag_chain import RAGChain, RAGResponse, create_rag_chain
from rag_assistant.retriever import DocumentMetadata, RetrievedDocument

NO_RESULTS = "I don't have information about that in the documentation."
FALLBACK = "Sorry, I couldn't generate a response."


def doc(text="Export via File > Export.", source="guide.md", section="Exporting", score=0.9):
    return RetrievedDocument(
        id=f"{source}#{section}",
        text=text,
        score=score,
        metadata=DocumentMetadata(source=source, section=section),
    )


@pytest.fixture
def retriever():
    retriever = Mock()
    retriever.retrieve = AsyncMock(return_value=[doc()])
    return retriever


@pytest.fixture
def llm_service():
    llm = Mock()
    llm.complete = AsyncMock(return_value=LLMResponse(
        content="  Use File > Export.  ",
        model="gpt-4o-mini",
        usage={"prompt_tokens": 100, "completion_tokens": 10, "total_tokens": 110},
    ))
    return llm


@pytest.fixture
def chain(retriever, llm_service):
    return RAGChain(
        retriever=retriever,
        llm_service=llm_service,
        assembler=ContextAssembler("You are a support assistant.", max_conversation_history=4),
        no_results_message=NO_RESULTS,
        fallback_error_message=FALLBACK,
    )


class TestRAGResponse:
    """Tests for RAGResponse dataclass."""

    def test_to_dict(self):
        response = RAGResponse(answer="A", sources=[doc()], query="Q", metadata={"total_time": 1.5})

        d = response.to_dict()

        assert d["answer"] == "A"
        assert d["sources"][0]["source"] == "guide.md"
        assert d["sources"][0]["section"] == "Exporting"
        assert d["metadata"]["total_time"] == 1.5

    def test_format_with_sources(self):
        response = RAGResponse(
            answer="Use File > Export.",
            sources=[doc(), doc(source="faq.md", section="Export"), doc()],
            query="How do I export?",
        )

        formatted = response.format_with_sources()

        assert formatted.startswith("Use File > Export.")
        assert "Sources" in formatted
        assert formatted.count("guide.md - Exporting") == 1
        assert "faq.md - Export" in formatted

    def test_source_labels_are_distinct(self):
        response = RAGResponse(
            answer="A",
            sources=[doc(), doc(source="faq.md", section=""), doc(), doc(source="", section="")],
            query="Q",
        )

        assert response.source_labels() == ["guide.md - Exporting", "faq.md"]

    def test_format_without_sources(self):
        response = RAGResponse(answer="No info found", sources=[], query="Unknown topic")
        assert response.format_with_sources() == "No info found"


class TestRAGChain:
    """Tests for RAGChain.answer."""

    @pytest.mark.asyncio
    async def test_answer_with_documents(self, chain, llm_service):
        response = await chain.answer("How do I export?")

        assert response.answer == "Use File > Export."
        assert len(response.sources) == 1
        assert response.metadata["chunks_found"] == 1
        assert response.metadata["model"] == "gpt-4o-mini"
        llm_service.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_prompt_contains_context(self, chain, llm_service):
        await chain.answer("How do I export?")

        messages = llm_service.complete.call_args.args[0]
        assert messages[0]["role"] == "system"
        assert "[1] guide.md - Exporting:" in messages[0]["content"]
        assert messages[-1] == {"role": "user", "content": "How do I export?"}

    @pytest.mark.asyncio
    async def test_no_documents_skips_llm(self, chain, retriever, llm_service):
        retriever.retrieve.return_value = []

        response = await chain.answer("What is the weather?")

        assert response.answer == NO_RESULTS
        assert response.sources == []
        assert response.metadata["chunks_found"] == 0
        llm_service.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_completion_uses_fallback(self, chain, llm_service):
        llm_service.complete.return_value = LLMResponse(content="   ", model="gpt-4o-mini")

        response = await chain.answer("How do I export?")

        assert response.answer == FALLBACK

    @pytest.mark.asyncio
    async def test_history_is_windowed(self, chain, llm_service):
        history = [
            ChatMessage(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
            for i in range(6)
        ]

        await chain.answer("And pricing?", history)

        messages = llm_service.complete.call_args.args[0]
        assert [m["content"] for m in messages[1:-1]] == ["turn 2", "turn 3", "turn 4", "turn 5"]

    @pytest.mark.asyncio
    async def test_generation_error_propagates(self, chain, llm_service):
        llm_service.complete.side_effect = GenerationError("boom")

        with pytest.raises(GenerationError):
            await chain.answer("How do I export?")

    @pytest.mark.asyncio
    async def test_retrieval_error_propagates(self, chain, retriever, llm_service):
        retriever.retrieve.side_effect = EmbeddingError("down")

        with pytest.raises(EmbeddingError):
            await chain.answer("How do I export?")
        llm_service.complete.assert_not_called()


class TestQueryRewriter:
    """Tests for LLMQueryRewriter."""

    @pytest.mark.asyncio
    async def test_rewrites(self, llm_service):
        llm_service.complete.return_value = LLMResponse(content='"export notes markdown"', model="m")
        rewriter = LLMQueryRewriter(llm_service)

        assert await rewriter.transform("how do I get them out as md?") == "export notes markdown"

    @pytest.mark.asyncio
    async def test_empty_rewrite_keeps_query(self, llm_service):
        llm_service.complete.return_value = LLMResponse(content="", model="m")
        rewriter = LLMQueryRewriter(llm_service)

        assert await rewriter.transform("original") == "original"


class TestCreateRAGChain:
    """Tests for the factory."""

    def test_uses_settings(self, retriever, llm_service):
        settings = Settings()
        chain = create_rag_chain(settings, retriever=retriever, llm_service=llm_service)

        assert chain.retriever is retriever
        assert chain.no_results_message == settings.chat.no_results_message
        assert chain.assembler.max_conversation_history == settings.chat.max_conversation_history

    def test_rewrite_wraps_shared_clients(self, retriever, llm_service):
        settings = Settings()
        settings.chat.rewrite_queries = True

        chain = create_rag_chain(settings, retriever=retriever, llm_service=llm_service)

        assert chain.retriever is not retriever
        assert chain.retriever.vector_store is retriever.vector_store
        assert isinstance(chain.retriever.query_transform, LLMQueryRewriter)
