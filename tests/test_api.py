"""
Tests for the HTTP API.

Run with: pytest tests/test_api.py -v
"""

from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from rag_assistant.api import GENERIC_ERROR, create_app
from rag_assistant.errors import EmbeddingError, GenerationError
from rag_assistant.memory import ChatMessage
from rag_assistant.rag_chain import RAGResponse
from rag_assistant.retriever import DocumentMetadata, RetrievedDocument


def make_response(answer="Use File > Export.", sources=None):
    if sources is None:
        sources = [RetrievedDocument(
            id="guide#0",
            text="Open File and choose Export to save your notes as Markdown.",
            score=0.91234,
            metadata=DocumentMetadata(source="guide.md", section="Exporting", title="User Guide"),
        )]
    return RAGResponse(answer=answer, sources=sources, query="q")


@pytest.fixture
def rag_chain():
    chain = Mock()
    chain.answer = AsyncMock(return_value=make_response())
    return chain


@pytest.fixture
def agent():
    agent = Mock()
    agent.chat = AsyncMock(return_value="Pro is $10/month.")
    return agent


@pytest.fixture
def client(rag_chain, agent):
    app = create_app(rag_chain=rag_chain, agent=agent)
    return TestClient(app, raise_server_exceptions=False)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestAskEndpoint:
    """Tests for POST /api/ask."""

    def test_answer_with_sources(self, client, rag_chain):
        response = client.post("/api/ask", json={"message": "How do I export?"})

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "Use File > Export."
        assert body["sources"][0]["source"] == "guide.md"
        assert body["sources"][0]["section"] == "Exporting"
        assert body["sources"][0]["title"] == "User Guide"
        assert body["sources"][0]["score"] == 0.9123
        rag_chain.answer.assert_awaited_once_with("How do I export?", [])

    def test_history_forwarded(self, client, rag_chain):
        client.post("/api/ask", json={
            "message": "And to PDF?",
            "conversationHistory": [
                {"role": "user", "content": "How do I export?"},
                {"role": "assistant", "content": "Use File > Export."},
            ],
        })

        history = rag_chain.answer.call_args.args[1]
        assert history == [
            ChatMessage(role="user", content="How do I export?"),
            ChatMessage(role="assistant", content="Use File > Export."),
        ]

    def test_no_results_has_empty_sources(self, client, rag_chain):
        rag_chain.answer.return_value = make_response(answer="Not in the docs.", sources=[])

        body = client.post("/api/ask", json={"message": "Weather?"}).json()

        assert body == {"answer": "Not in the docs.", "sources": []}

    @pytest.mark.parametrize("payload", [
        {},
        {"message": 42},
        {"message": ""},
        {"message": "hi", "conversationHistory": [{"role": "robot", "content": "x"}]},
        {"message": "hi", "conversationHistory": "not a list"},
    ])
    def test_malformed_payload(self, client, rag_chain, payload):
        response = client.post("/api/ask", json=payload)

        assert response.status_code == 400
        assert "error" in response.json()
        rag_chain.answer.assert_not_called()

    def test_invalid_json(self, client):
        response = client.post(
            "/api/ask", content="{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_retrieval_failure(self, client, rag_chain):
        rag_chain.answer.side_effect = EmbeddingError("openai timed out after 30s")

        response = client.post("/api/ask", json={"message": "How do I export?"})

        assert response.status_code == 500
        assert response.json() == {"error": EmbeddingError.user_message}
        assert "timed out" not in response.text


class TestChatEndpoint:
    """Tests for POST /api/chat."""

    def test_reply(self, client, agent):
        response = client.post("/api/chat", json={
            "messages": [{"role": "user", "content": "What's the pricing?"}],
        })

        assert response.status_code == 200
        assert response.json() == {"reply": "Pro is $10/month."}
        agent.chat.assert_awaited_once_with([ChatMessage(role="user", content="What's the pricing?")])

    def test_empty_reply_allowed(self, client, agent):
        agent.chat.return_value = ""
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
        assert response.json() == {"reply": ""}

    @pytest.mark.parametrize("payload", [
        {},
        {"messages": []},
        {"messages": "hello"},
        {"messages": [{"role": "user"}]},
        {"messages": [{"role": "user", "content": 5}]},
    ])
    def test_malformed_payload(self, client, agent, payload):
        response = client.post("/api/chat", json=payload)

        assert response.status_code == 400
        assert "error" in response.json()
        agent.chat.assert_not_called()

    def test_rate_limit_message(self, client, agent):
        agent.chat.side_effect = GenerationError("429 Too Many Requests", kind="rate_limit")

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 500
        assert "Rate limit exceeded" in response.json()["error"]

    def test_unexpected_error_is_generic(self, client, agent):
        agent.chat.side_effect = RuntimeError("secret internal detail")

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR}
