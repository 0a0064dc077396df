"""
Retriever Module

Turns a user query into a list of relevant documents:

    query -> [optional transform] -> embed -> vector search -> score filter -> documents

Design Rationale:
- Whitespace-only queries short-circuit before any network call
- The score threshold is inclusive (score >= min_score) and is applied here,
  not in the vector store, so every backend behaves the same
- Missing metadata fields are coerced to safe defaults so context formatting
  never fails on a partially-indexed record
- Embedding and search failures propagate; callers decide whether to recover
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from config.settings import RetrievalConfig, Settings
from rag_assistant.embeddings import EmbeddingService
from rag_assistant.vector_store import VectorMatch, VectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentMetadata:
    """
    Provenance of a retrieved chunk.

    ``source`` and ``section`` default to "" when absent; ``title`` and
    ``subsection`` stay None.
    """

    source: str = ""
    section: str = ""
    title: Optional[str] = None
    subsection: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "DocumentMetadata":
        """Coerce a raw metadata mapping from the vector store."""
        raw = raw or {}

        def optional_str(value: Any) -> Optional[str]:
            return str(value) if value not in (None, "") else None

        return cls(
            source=str(raw.get("source") or ""),
            section=str(raw.get("section") or ""),
            title=optional_str(raw.get("title")),
            subsection=optional_str(raw.get("subsection")),
        )

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary, omitting absent optional fields."""
        data = {"source": self.source, "section": self.section}
        if self.title is not None:
            data["title"] = self.title
        if self.subsection is not None:
            data["subsection"] = self.subsection
        return data


@dataclass(frozen=True)
class RetrievedDocument:
    """
    A chunk returned for a query.

    Attributes:
        id: Vector record id
        text: Chunk text
        score: Similarity score, always >= the configured min_score
        metadata: Provenance
    """

    id: str
    text: str
    score: float
    metadata: DocumentMetadata

    def to_source_preview(self, max_chars: int = 200) -> Dict[str, Any]:
        """Citation entry for display: truncated text plus provenance."""
        preview = self.text if len(self.text) <= max_chars else self.text[:max_chars].rstrip() + "..."
        return {
            "text": preview,
            **self.metadata.to_dict(),
            "score": round(self.score, 4),
        }


class QueryTransform(Protocol):
    """Rewrites a query before it is embedded."""

    async def transform(self, query: str) -> str:
        ...


class Retriever:
    """
    Embeds a query, searches the vector store and filters by score.

    Example:
        retriever = Retriever(embedding_service, vector_store, settings.retrieval)
        docs = await retriever.retrieve("How do I export my notes?")
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        config: RetrievalConfig,
        namespace: Optional[str] = None,
        query_transform: Optional[QueryTransform] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.config = config
        self.namespace = namespace
        self.query_transform = query_transform
        self.logger = logger or logging.getLogger(__name__)

    async def retrieve(self, query: str) -> List[RetrievedDocument]:
        """
        Retrieve documents relevant to a query.

        Returns:
            Documents with score >= min_score, in descending score order.
            Empty for a blank query or when nothing passes the threshold.

        Raises:
            EmbeddingError / SearchError from the underlying services
        """
        if not query or not query.strip():
            self.logger.debug("Blank query, skipping retrieval")
            return []

        search_query = query
        if self.query_transform is not None:
            search_query = await self.query_transform.transform(query)
            if search_query != query:
                self.logger.info(f"Query rewritten: '{query}' -> '{search_query}'")

        self.logger.info(f"Retrieving top {self.config.top_k} for query: {search_query[:100]}")

        vector = await self.embedding_service.embed_query(search_query)
        matches = await self.vector_store.query(vector, self.config.top_k, namespace=self.namespace)

        if matches:
            scores = [_score(m) for m in matches]
            self.logger.debug(f"Score range: {min(scores):.4f} - {max(scores):.4f}")

        kept = self.filter_matches(matches, self.config.min_score)
        self.logger.info(
            f"Retrieved {len(matches)} matches, {len(kept)} kept at min_score={self.config.min_score}"
        )
        if matches and not kept:
            self.logger.warning("All matches were below the score threshold")

        return [self._to_document(m) for m in kept]

    @staticmethod
    def filter_matches(matches: Sequence[VectorMatch], min_score: float) -> List[VectorMatch]:
        """Keep matches whose score is >= min_score (missing score counts as 0)."""
        return [m for m in matches if _score(m) >= min_score]

    @staticmethod
    def _to_document(match: VectorMatch) -> RetrievedDocument:
        metadata = match.metadata or {}
        return RetrievedDocument(
            id=match.id,
            text=str(metadata.get("text") or ""),
            score=_score(match),
            metadata=DocumentMetadata.from_raw(metadata),
        )


def _score(match: VectorMatch) -> float:
    return float(match.score) if match.score is not None else 0.0


def build_retriever(
    settings: Settings,
    embedding_service: Optional[EmbeddingService] = None,
    vector_store: Optional[VectorStore] = None,
    query_transform: Optional[QueryTransform] = None,
) -> Retriever:
    """
    Factory function to create a Retriever from settings.

    Missing collaborators are built from the corresponding config sections.
    """
    embedding_service = embedding_service or EmbeddingService(settings.embedding)
    vector_store = vector_store or VectorStore(
        settings.vector_store, dimension=settings.embedding.dimension
    )
    return Retriever(
        embedding_service=embedding_service,
        vector_store=vector_store,
        config=settings.retrieval,
        namespace=settings.vector_store.pinecone_namespace,
        query_transform=query_transform,
    )
