"""
Document Indexer

Write side of the knowledge base: embeds chunks in batches and upserts them
into the vector store. Re-indexing a file writes its new chunks first and then
removes the records the new version no longer has. Also deletes a file's
records, clears a namespace and reports index statistics.

Every upserted vector must have the embedding model's dimension, and the
model's dimension must match the index's. A mismatch is a configuration
problem and raises ConfigurationError before anything is written.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from rag_assistant.chunker import DocumentChunk, MarkdownChunker, source_prefix
from rag_assistant.embeddings import EmbeddingService
from rag_assistant.errors import ConfigurationError
from rag_assistant.vector_store import VectorRecord, VectorStore

logger = logging.getLogger(__name__)


class DocumentIndexer:
    """
    Embeds and stores document chunks.

    Example:
        indexer = DocumentIndexer(embedding_service, vector_store, chunker)
        count = await indexer.index_directory("docs/")
        print(await indexer.stats())
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        chunker: Optional[MarkdownChunker] = None,
        namespace: Optional[str] = None,
        batch_size: int = 100,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.chunker = chunker or MarkdownChunker()
        self.namespace = namespace
        self.batch_size = batch_size

    async def _check_index_dimension(self) -> None:
        stats = await self.vector_store.describe()
        index_dimension = stats.get("dimension")
        if index_dimension and index_dimension != self.embedding_service.dimension:
            raise ConfigurationError([
                f"Embedding model {self.embedding_service.model_name} produces "
                f"{self.embedding_service.dimension}-dimensional vectors but the index "
                f"expects {index_dimension}"
            ])

    async def _embed(self, chunks: Sequence[DocumentChunk]) -> List[VectorRecord]:
        """Embed chunks into vector records without writing anything."""
        if not chunks:
            return []

        await self._check_index_dimension()
        expected = self.embedding_service.dimension

        records: List[VectorRecord] = []
        for i in range(0, len(chunks), self.batch_size):
            batch = list(chunks[i:i + self.batch_size])
            logger.info(f"Embedding chunks {i + 1}-{i + len(batch)} of {len(chunks)}")

            embeddings = await self.embedding_service.embed_batch([c.text for c in batch])
            for chunk, embedding in zip(batch, embeddings):
                if len(embedding) != expected:
                    raise ConfigurationError([
                        f"Chunk {chunk.id} embedded to {len(embedding)} dimensions, "
                        f"expected {expected}"
                    ])
                chunk.embedding = embedding
                records.append((chunk.id, embedding, chunk.to_record_metadata()))
        return records

    async def _upsert(self, records: Sequence[VectorRecord]) -> int:
        written = 0
        for i in range(0, len(records), self.batch_size):
            written += await self.vector_store.upsert(
                list(records[i:i + self.batch_size]), namespace=self.namespace
            )
        return written

    async def index_chunks(self, chunks: Sequence[DocumentChunk]) -> int:
        """
        Embed and upsert chunks.

        Returns:
            Number of records written

        Raises:
            ConfigurationError: dimension mismatch
            EmbeddingError: embedding failure
        """
        records = await self._embed(chunks)
        written = await self._upsert(records)
        logger.info(f"Indexed {written} chunks")
        return written

    async def replace_source(self, source: str, chunks: Sequence[DocumentChunk]) -> int:
        """
        Make the index hold exactly these chunks for a source file.

        New records are embedded and written before the file's other records
        are removed, so a failed embedding leaves the previous version intact.
        """
        records = await self._embed(chunks)
        previous = await self.vector_store.list_ids(source_prefix(source), namespace=self.namespace)

        written = await self._upsert(records)

        current = {record_id for record_id, _, _ in records}
        stale = [record_id for record_id in previous if record_id not in current]
        if stale:
            await self.vector_store.delete(stale, namespace=self.namespace)

        logger.info(f"Indexed {written} chunks for {source}, removed {len(stale)} stale records")
        return written

    async def index_file(self, file_path: Union[str, Path]) -> int:
        """Chunk and index one markdown file, replacing its earlier records."""
        chunks = self.chunker.process_file(file_path)
        return await self.replace_source(Path(file_path).name, chunks)

    async def index_directory(self, directory_path: Union[str, Path]) -> int:
        """Chunk and index every markdown file in a directory, file by file."""
        by_source: Dict[str, List[DocumentChunk]] = {}
        for chunk in self.chunker.process_directory(directory_path):
            by_source.setdefault(chunk.metadata.source, []).append(chunk)

        written = 0
        for source, chunks in by_source.items():
            written += await self.replace_source(source, chunks)
        return written

    async def delete_source(self, source: str) -> int:
        """Delete every record that came from a source file."""
        ids = await self.vector_store.list_ids(source_prefix(source), namespace=self.namespace)
        if ids:
            await self.vector_store.delete(ids, namespace=self.namespace)
        logger.info(f"Deleted {len(ids)} records for {source}")
        return len(ids)

    async def clear(self) -> None:
        await self.vector_store.clear(namespace=self.namespace)

    async def stats(self) -> Dict[str, Any]:
        """Index statistics plus the embedding model in use."""
        stats = await self.vector_store.describe()
        stats["embedding_model"] = self.embedding_service.model_name
        stats["embedding_dimension"] = self.embedding_service.dimension
        return stats
