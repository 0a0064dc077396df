"""
Support Assistant - Core Package

This package contains the retrieval-augmented support assistant:
- EmbeddingService: Embedding generation (OpenAI / sentence-transformers)
- VectorStore: Vector database interface (Pinecone / FAISS)
- Retriever: Embed + search + score filter
- ContextAssembler: Context block, system prompt, history window
- LLMService: Chat completion providers (OpenAI / Mistral), tool calls
- RAGChain: Direct RAG answer with sources
- RAGAgent: Agentic chat with an on-demand search tool
- MarkdownChunker / DocumentIndexer: Knowledge base ingestion
"""

from .errors import (
    AssistantError,
    ConfigurationError,
    EmbeddingError,
    GenerationError,
    SearchError,
    ValidationError,
)
from .embeddings import EmbeddingService
from .vector_store import VectorStore, VectorMatch
from .memory import ChatMessage, ConversationWindow
from .retriever import DocumentMetadata, RetrievedDocument, Retriever, build_retriever
from .context import ContextAssembler
from .llm_service import LLMService, LLMResponse, DirectAnswer, ToolRequest, ToolCall
from .rag_chain import RAGChain, RAGResponse, create_rag_chain
from .rag_agent import RAGAgent, create_agent
from .chunker import DocumentChunk, MarkdownChunker
from .indexer import DocumentIndexer

__all__ = [
    # Errors
    "AssistantError",
    "ConfigurationError",
    "EmbeddingError",
    "GenerationError",
    "SearchError",
    "ValidationError",
    # Retrieval
    "EmbeddingService",
    "VectorStore",
    "VectorMatch",
    "DocumentMetadata",
    "RetrievedDocument",
    "Retriever",
    "ContextAssembler",
    # Generation
    "LLMService",
    "LLMResponse",
    "DirectAnswer",
    "ToolRequest",
    "ToolCall",
    "ChatMessage",
    "ConversationWindow",
    "RAGChain",
    "RAGResponse",
    "RAGAgent",
    # Ingestion
    "DocumentChunk",
    "MarkdownChunker",
    "DocumentIndexer",
    # Factory functions
    "build_retriever",
    "create_rag_chain",
    "create_agent",
]
