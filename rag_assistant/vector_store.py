"""
Vector Store Module

Provides vector database functionality for storing and searching embeddings.
Supports two backends:
- Pinecone: Production, managed, namespaced serverless index
- FAISS: Local, fast, for development/prototyping

Design Rationale:
- Abstract interface for easy backend switching
- Both SDKs are blocking, so every call runs in the default executor and the
  public interface is made of coroutines
- Search results are plain VectorMatch records; turning them into documents
  (score filtering, metadata coercion) is the Retriever's job

Schema (metadata stored per record):
- text: Original chunk text
- source: Document filename
- section / title / subsection: Heading path of the chunk
- chunk_index: Position of the chunk inside its source
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from config.settings import VectorStoreConfig
from rag_assistant.errors import ConfigurationError, SearchError

# Configure logging
logger = logging.getLogger(__name__)

# (id, values, metadata)
VectorRecord = Tuple[str, List[float], Dict[str, Any]]

DEFAULT_NAMESPACE = ""


@dataclass(frozen=True)
class VectorMatch:
    """
    A single search hit.

    Attributes:
        id: Record identifier
        score: Similarity score (higher is better), None if the backend omitted it
        metadata: Raw metadata stored with the record
    """

    id: str
    score: Optional[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


def clean_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values; Pinecone rejects null metadata fields."""
    return {k: v for k, v in metadata.items() if v is not None}


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from either a dict-like or an attribute-style SDK object."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class BaseVectorStore(ABC):
    """
    Abstract base class for vector stores.

    Read side:  query
    Write side: upsert, delete, clear, describe
    """

    @abstractmethod
    async def query(
        self,
        vector: List[float],
        top_k: int,
        namespace: Optional[str] = None,
    ) -> List[VectorMatch]:
        """
        Search for the nearest records.

        Returns:
            At most top_k matches ordered by descending score

        Raises:
            SearchError: backend failure
        """
        pass

    @abstractmethod
    async def upsert(self, records: Sequence[VectorRecord], namespace: Optional[str] = None) -> int:
        """Insert or replace records. Returns number written."""
        pass

    @abstractmethod
    async def delete(self, ids: Sequence[str], namespace: Optional[str] = None) -> None:
        """Delete records by id."""
        pass

    @abstractmethod
    async def clear(self, namespace: Optional[str] = None) -> None:
        """Delete every record in a namespace."""
        pass

    @abstractmethod
    async def describe(self) -> Dict[str, Any]:
        """Return index statistics: dimension, total count, per-namespace counts."""
        pass

    @abstractmethod
    async def list_ids(self, prefix: str, namespace: Optional[str] = None) -> List[str]:
        """Return the ids of every record whose id starts with prefix."""
        pass


async def _in_executor(func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))


class PineconeVectorStore(BaseVectorStore):
    """
    Pinecone serverless index.

    The client and index handle are created lazily on first use and reused.
    """

    def __init__(
        self,
        api_key: Optional[str],
        index_name: str,
        namespace: Optional[str] = None,
        cloud: str = "aws",
        region: str = "us-east-1",
        index=None,
    ):
        """
        Initialize the Pinecone store.

        Args:
            api_key: Pinecone API key
            index_name: Name of the index
            namespace: Default namespace for every call
            cloud / region: Serverless spec used by ensure_index
            index: Pre-built index handle (mainly for tests)
        """
        self.index_name = index_name
        self.namespace = namespace
        self._api_key = api_key
        self._cloud = cloud
        self._region = region
        self._client = None
        self._index = index

        logger.info(f"PineconeVectorStore configured: index={index_name}, namespace={namespace}")

    def _get_client(self):
        if self._client is None:
            from pinecone import Pinecone

            self._client = Pinecone(api_key=self._api_key)
        return self._client

    def _get_index(self):
        if self._index is None:
            self._index = self._get_client().Index(self.index_name)
        return self._index

    def _ns(self, namespace: Optional[str]) -> str:
        return namespace if namespace is not None else (self.namespace or DEFAULT_NAMESPACE)

    def ensure_index(self, dimension: int, metric: str = "cosine"):
        """Create the index if it does not exist yet (ingestion only)."""
        from pinecone import ServerlessSpec

        client = self._get_client()
        existing = {_field(i, "name") for i in client.list_indexes()}
        if self.index_name not in existing:
            logger.info(f"Creating Pinecone index {self.index_name} (dimension={dimension})")
            client.create_index(
                name=self.index_name,
                dimension=dimension,
                metric=metric,
                spec=ServerlessSpec(cloud=self._cloud, region=self._region),
            )
        return self._get_index()

    async def query(
        self,
        vector: List[float],
        top_k: int,
        namespace: Optional[str] = None,
    ) -> List[VectorMatch]:
        index = self._get_index()
        try:
            response = await _in_executor(
                index.query,
                vector=vector,
                top_k=top_k,
                include_metadata=True,
                namespace=self._ns(namespace),
            )
        except Exception as e:
            logger.error(f"Pinecone query failed: {e}")
            raise SearchError(f"Vector search failed: {e}") from e

        matches = []
        for m in _field(response, "matches", None) or []:
            matches.append(VectorMatch(
                id=str(_field(m, "id", "")),
                score=_field(m, "score"),
                metadata=dict(_field(m, "metadata", None) or {}),
            ))
        return matches

    async def upsert(self, records: Sequence[VectorRecord], namespace: Optional[str] = None) -> int:
        if not records:
            return 0
        cleaned = [(rid, list(values), clean_metadata(md)) for rid, values, md in records]
        index = self._get_index()
        await _in_executor(index.upsert, vectors=cleaned, namespace=self._ns(namespace))
        logger.info(f"Upserted {len(cleaned)} vectors into {self.index_name}")
        return len(cleaned)

    async def delete(self, ids: Sequence[str], namespace: Optional[str] = None) -> None:
        if not ids:
            return
        index = self._get_index()
        await _in_executor(index.delete, ids=list(ids), namespace=self._ns(namespace))

    async def clear(self, namespace: Optional[str] = None) -> None:
        index = self._get_index()
        await _in_executor(index.delete, delete_all=True, namespace=self._ns(namespace))
        logger.info(f"Cleared namespace '{self._ns(namespace)}' of {self.index_name}")

    async def list_ids(self, prefix: str, namespace: Optional[str] = None) -> List[str]:
        index = self._get_index()
        ns = self._ns(namespace)

        def collect():
            # index.list yields pages of ids
            return [rid for page in index.list(prefix=prefix, namespace=ns) for rid in page]

        return await _in_executor(collect)

    async def describe(self) -> Dict[str, Any]:
        index = self._get_index()
        stats = await _in_executor(index.describe_index_stats)
        namespaces = _field(stats, "namespaces", None) or {}
        return {
            "backend": "pinecone",
            "index": self.index_name,
            "dimension": _field(stats, "dimension"),
            "total_vector_count": _field(stats, "total_vector_count", 0),
            "namespaces": {
                name: _field(ns, "vector_count", 0) for name, ns in namespaces.items()
            },
        }


class FAISSVectorStore(BaseVectorStore):
    """
    FAISS-based vector store for local development.

    One IndexIDMap over an IndexFlatIP per namespace. Vectors are
    L2-normalized, so inner product equals cosine similarity. Record ids map
    to FAISS int64 ids, which lets a record be replaced or removed in place.

    Persistence (optional) follows the faiss.write_index layout:
        <index_path>.json            ids, metadata, dimension
        <index_path>.<n>.faiss       one binary index per namespace
    """

    def __init__(self, dimension: int, index_path: Optional[str] = None):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Embedding dimension (must match your model)
            index_path: Base path for saving/loading the index (optional)

        Raises:
            ConfigurationError: the saved index has another dimension
        """
        self.dimension = dimension
        self.index_path = Path(index_path) if index_path else None

        # namespace -> faiss.IndexIDMap
        self._indexes: Dict[str, Any] = {}
        # namespace -> {record id: (faiss id, metadata)}
        self._records: Dict[str, Dict[str, Tuple[int, Dict[str, Any]]]] = {}
        # namespace -> {faiss id: record id}
        self._ids: Dict[str, Dict[int, str]] = {}
        self._next_id = 0

        if self.index_path and self._metadata_path.exists():
            self._load()

        logger.info(
            f"FAISSVectorStore initialized: dimension={dimension}, "
            f"index_path={index_path}"
        )

    @property
    def _metadata_path(self) -> Path:
        return self.index_path.with_suffix(".json")

    def _index_file(self, slot: int) -> Path:
        return self.index_path.with_suffix(f".{slot}.faiss")

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        """Normalize vectors for cosine similarity."""
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1
        return vectors / norms

    def _new_index(self):
        import faiss

        return faiss.IndexIDMap(faiss.IndexFlatIP(self.dimension))

    def _namespace(self, namespace: str):
        if namespace not in self._indexes:
            self._indexes[namespace] = self._new_index()
            self._records[namespace] = {}
            self._ids[namespace] = {}
        return self._indexes[namespace]

    def _remove(self, namespace: str, record_ids: Sequence[str]) -> int:
        bucket = self._records.get(namespace, {})
        faiss_ids = []
        for rid in record_ids:
            entry = bucket.pop(rid, None)
            if entry is not None:
                faiss_ids.append(entry[0])
                self._ids[namespace].pop(entry[0], None)
        if faiss_ids:
            self._indexes[namespace].remove_ids(np.array(faiss_ids, dtype=np.int64))
        return len(faiss_ids)

    def _query_sync(self, vector: List[float], top_k: int, namespace: str) -> List[VectorMatch]:
        index = self._indexes.get(namespace)
        if index is None or index.ntotal == 0:
            logger.warning("Search on empty index")
            return []

        query_vector = self._normalize(np.array([vector], dtype=np.float32))
        k = min(top_k, index.ntotal)
        scores, labels = index.search(query_vector, k)

        matches = []
        for score, label in zip(scores[0], labels[0]):
            if label < 0:  # FAISS returns -1 for not found
                continue
            record_id = self._ids[namespace][int(label)]
            matches.append(VectorMatch(
                id=record_id,
                score=float(score),
                metadata=dict(self._records[namespace][record_id][1]),
            ))
        return matches

    async def query(
        self,
        vector: List[float],
        top_k: int,
        namespace: Optional[str] = None,
    ) -> List[VectorMatch]:
        ns = namespace or DEFAULT_NAMESPACE
        try:
            return await _in_executor(self._query_sync, vector, top_k, ns)
        except Exception as e:
            logger.error(f"FAISS query failed: {e}")
            raise SearchError(f"Vector search failed: {e}") from e

    async def upsert(self, records: Sequence[VectorRecord], namespace: Optional[str] = None) -> int:
        if not records:
            return 0
        ns = namespace or DEFAULT_NAMESPACE
        index = self._namespace(ns)
        # last write wins for repeated ids
        records = list({rid: (rid, values, md) for rid, values, md in records}.values())

        # replaced records get a fresh faiss id
        self._remove(ns, [rid for rid, _, _ in records])

        faiss_ids = np.arange(self._next_id, self._next_id + len(records), dtype=np.int64)
        self._next_id += len(records)
        vectors = np.array([values for _, values, _ in records], dtype=np.float32)
        index.add_with_ids(self._normalize(vectors), faiss_ids)

        for fid, (rid, _, md) in zip(faiss_ids.tolist(), records):
            self._records[ns][rid] = (fid, clean_metadata(md))
            self._ids[ns][fid] = rid

        self._save()
        logger.info(f"Added {len(records)} vectors to FAISS namespace '{ns}'")
        return len(records)

    async def delete(self, ids: Sequence[str], namespace: Optional[str] = None) -> None:
        ns = namespace or DEFAULT_NAMESPACE
        if ns not in self._indexes:
            return
        deleted = self._remove(ns, ids)
        if deleted:
            self._save()
        logger.debug(f"Deleted {deleted} vectors from FAISS namespace '{ns}'")

    async def clear(self, namespace: Optional[str] = None) -> None:
        ns = namespace or DEFAULT_NAMESPACE
        self._indexes.pop(ns, None)
        self._records.pop(ns, None)
        self._ids.pop(ns, None)
        self._save()
        logger.info(f"FAISS namespace '{ns}' cleared")

    async def list_ids(self, prefix: str, namespace: Optional[str] = None) -> List[str]:
        bucket = self._records.get(namespace or DEFAULT_NAMESPACE, {})
        return [rid for rid in bucket if rid.startswith(prefix)]

    async def describe(self) -> Dict[str, Any]:
        counts = {ns: len(records) for ns, records in self._records.items()}
        return {
            "backend": "faiss",
            "index": str(self.index_path) if self.index_path else None,
            "dimension": self.dimension,
            "total_vector_count": sum(counts.values()),
            "namespaces": counts,
        }

    def _save(self) -> None:
        """Save indexes and metadata to disk."""
        import faiss

        if not self.index_path:
            return

        self.index_path.parent.mkdir(parents=True, exist_ok=True)

        namespaces = {}
        for slot, (ns, index) in enumerate(self._indexes.items()):
            faiss.write_index(index, str(self._index_file(slot)))
            namespaces[ns] = {
                "file": self._index_file(slot).name,
                "records": {
                    rid: {"id": fid, "metadata": md}
                    for rid, (fid, md) in self._records[ns].items()
                },
            }

        metadata = {
            "dimension": self.dimension,
            "next_id": self._next_id,
            "namespaces": namespaces,
        }
        with open(self._metadata_path, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)

        logger.debug(f"Saved FAISS index to {self.index_path}")

    def _load(self) -> None:
        """Load indexes and metadata from disk."""
        import faiss

        with open(self._metadata_path, "r", encoding="utf-8") as f:
            metadata = json.load(f)

        stored_dimension = metadata.get("dimension")
        if stored_dimension and stored_dimension != self.dimension:
            raise ConfigurationError([
                f"FAISS index at {self.index_path} has dimension {stored_dimension} "
                f"but the embedding model produces {self.dimension}"
            ])

        self._next_id = metadata.get("next_id", 0)
        for ns, entry in metadata.get("namespaces", {}).items():
            self._indexes[ns] = faiss.read_index(str(self.index_path.parent / entry["file"]))
            self._records[ns] = {
                rid: (item["id"], item.get("metadata", {}))
                for rid, item in entry["records"].items()
            }
            self._ids[ns] = {fid: rid for rid, (fid, _) in self._records[ns].items()}

        total = sum(index.ntotal for index in self._indexes.values())
        logger.info(f"Loaded FAISS index with {total} vectors")


class VectorStore:
    """
    Main Vector Store class with unified interface.

    This is the class that other components should use. It selects the
    backend from VectorStoreConfig and forwards every call.

    Example:
        store = VectorStore(settings.vector_store, dimension=1536)
        matches = await store.query(vector, top_k=10)
    """

    def __init__(
        self,
        config: VectorStoreConfig,
        dimension: int,
        provider: Optional[str] = None,
        backend: Optional[BaseVectorStore] = None,
    ):
        self.config = config
        provider = provider or config.provider

        if backend is not None:
            self._store = backend
        elif provider == "pinecone":
            self._store = PineconeVectorStore(
                api_key=config.pinecone_api_key,
                index_name=config.pinecone_index_name,
                namespace=config.pinecone_namespace,
                cloud=config.pinecone_cloud,
                region=config.pinecone_region,
            )
        elif provider == "faiss":
            self._store = FAISSVectorStore(
                dimension=dimension,
                index_path=config.faiss_index_path,
            )
        else:
            raise ValueError(f"Unknown vector store provider: {provider}")

        self._provider = provider
        self.dimension = dimension
        logger.info(f"VectorStore initialized with {provider} backend")

    async def query(self, vector: List[float], top_k: int, namespace: Optional[str] = None) -> List[VectorMatch]:
        return await self._store.query(vector, top_k, namespace=namespace)

    async def upsert(self, records: Sequence[VectorRecord], namespace: Optional[str] = None) -> int:
        return await self._store.upsert(records, namespace=namespace)

    async def delete(self, ids: Sequence[str], namespace: Optional[str] = None) -> None:
        await self._store.delete(ids, namespace=namespace)

    async def clear(self, namespace: Optional[str] = None) -> None:
        await self._store.clear(namespace=namespace)

    async def describe(self) -> Dict[str, Any]:
        return await self._store.describe()

    async def list_ids(self, prefix: str, namespace: Optional[str] = None) -> List[str]:
        return await self._store.list_ids(prefix, namespace=namespace)

    def ensure_index(self) -> None:
        """Create the backing index when the backend needs one."""
        if isinstance(self._store, PineconeVectorStore):
            self._store.ensure_index(self.dimension)

    @property
    def provider(self) -> str:
        return self._provider
