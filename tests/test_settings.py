"""
Tests for configuration settings.

Run with: pytest tests/test_settings.py -v
"""

import pytest

from config.settings import (
    ChatConfig,
    EmbeddingConfig,
    RetrievalConfig,
    Settings,
    load_settings,
)
from rag_assistant.errors import ConfigurationError

ENV_KEYS = [
    "OPENAI_API_KEY",
    "MISTRAL_API_KEY",
    "PINECONE_API_KEY",
    "PINECONE_INDEX_NAME",
    "PINECONE_NAMESPACE",
    "LLM_PROVIDER",
    "EMBEDDING_PROVIDER",
    "VECTOR_STORE_PROVIDER",
    "TOP_K_RESULTS",
    "MIN_SCORE",
    "MAX_CONVERSATION_HISTORY",
    "SYSTEM_PROMPT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every setting the tests care about."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr("config.settings.load_dotenv", lambda: None)
    return monkeypatch


class TestDefaults:
    """Defaults match the documented configuration surface."""

    def test_retrieval_defaults(self):
        config = RetrievalConfig()
        assert config.top_k == 10
        assert config.min_score == 0.25

    def test_chat_defaults(self):
        config = ChatConfig()
        assert config.max_conversation_history == 4
        assert config.no_context_message == "No relevant context found."
        assert config.fallback_error_message == (
            "I apologize, but I couldn't generate an answer. Please try again."
        )
        assert config.search_tool_name == "search_bio"

    def test_embedding_dimension(self):
        assert EmbeddingConfig().dimension == 1536
        assert EmbeddingConfig(provider="local").dimension == 384


class TestRetrievalConfigValidation:
    """Out-of-range retrieval values are reported, not silently used."""

    def test_zero_top_k_rejected(self):
        assert RetrievalConfig(top_k=0).problems() == ["top_k must be a positive integer (got 0)"]

    def test_min_score_out_of_range_rejected(self):
        assert len(RetrievalConfig(min_score=1.5).problems()) == 1

    def test_all_problems_reported(self):
        assert len(RetrievalConfig(top_k=-1, min_score=-0.1).problems()) == 2

    def test_boundaries_accepted(self):
        assert RetrievalConfig(top_k=1, min_score=0.0).problems() == []
        assert RetrievalConfig(top_k=1, min_score=1.0).problems() == []

    def test_validate_rejects_bad_retrieval(self):
        settings = Settings()
        settings.retrieval.top_k = 0
        settings.vector_store.provider = "faiss"
        settings.embedding.openai_api_key = "sk-test"
        settings.llm.openai_api_key = "sk-test"

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate()

        assert exc_info.value.problems == ["top_k must be a positive integer (got 0)"]


class TestEnvironmentLoading:
    """Settings.from_env and load_settings."""

    def test_reads_values(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("PINECONE_API_KEY", "pc-test")
        clean_env.setenv("PINECONE_INDEX_NAME", "docs")
        clean_env.setenv("PINECONE_NAMESPACE", "guides")
        clean_env.setenv("TOP_K_RESULTS", "5")
        clean_env.setenv("MIN_SCORE", "0.4")
        clean_env.setenv("MAX_CONVERSATION_HISTORY", "6")

        settings = load_settings()

        assert settings.embedding.openai_api_key == "sk-test"
        assert settings.llm.openai_api_key == "sk-test"
        assert settings.vector_store.pinecone_index_name == "docs"
        assert settings.vector_store.pinecone_namespace == "guides"
        assert settings.retrieval.top_k == 5
        assert settings.retrieval.min_score == 0.4
        assert settings.chat.max_conversation_history == 6

    def test_missing_settings_are_aggregated(self, clean_env):
        """Every missing key is reported at once, without duplicates."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()

        problems = exc_info.value.problems
        assert problems == [
            "OPENAI_API_KEY is not set",
            "PINECONE_API_KEY is not set",
            "PINECONE_INDEX_NAME is not set",
        ]
        assert "OPENAI_API_KEY is not set" in str(exc_info.value)

    def test_retrieval_problems_reported_with_missing_keys(self, clean_env):
        clean_env.setenv("TOP_K_RESULTS", "0")
        clean_env.setenv("MIN_SCORE", "2")
        clean_env.setenv("EMBEDDING_PROVIDER", "local")
        clean_env.setenv("VECTOR_STORE_PROVIDER", "faiss")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()

        assert exc_info.value.problems == [
            "OPENAI_API_KEY is not set",
            "top_k must be a positive integer (got 0)",
            "min_score must be within [0, 1] (got 2.0)",
        ]

    def test_mistral_requires_its_key(self, clean_env):
        clean_env.setenv("LLM_PROVIDER", "mistral")
        clean_env.setenv("EMBEDDING_PROVIDER", "local")
        clean_env.setenv("VECTOR_STORE_PROVIDER", "faiss")

        settings = Settings.from_env()

        assert settings.missing_settings() == ["MISTRAL_API_KEY"]

    def test_local_stack_needs_no_keys(self, clean_env):
        clean_env.setenv("LLM_PROVIDER", "mistral")
        clean_env.setenv("MISTRAL_API_KEY", "m-test")
        clean_env.setenv("EMBEDDING_PROVIDER", "local")
        clean_env.setenv("VECTOR_STORE_PROVIDER", "faiss")

        settings = load_settings()

        assert settings.embedding.provider == "local"

    def test_validate_can_be_skipped(self, clean_env):
        settings = load_settings(validate=False)
        assert settings.llm.openai_api_key is None

    def test_system_prompt_override(self, clean_env):
        clean_env.setenv("SYSTEM_PROMPT", "Be brief.")
        settings = Settings.from_env()
        assert settings.chat.system_prompt == "Be brief."
