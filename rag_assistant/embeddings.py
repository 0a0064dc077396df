"""
Embedding Service Module

Provides an abstraction layer for embedding generation, supporting both:
- Cloud: OpenAI (text-embedding-3-small) - Requires API key, production default
- Local: Sentence Transformers (all-MiniLM-L6-v2) - Free, no API key needed

Design Rationale:
- Abstract interface allows easy switching between providers
- All calls are coroutines so a request never blocks the event loop
  (the local model runs in the default executor)
- Malformed responses surface as EmbeddingError, never as a silent empty vector

Embedding Dimensions:
- all-MiniLM-L6-v2: 384 dimensions
- all-mpnet-base-v2: 768 dimensions
- text-embedding-3-small: 1536 dimensions
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from config.settings import EmbeddingConfig
from rag_assistant.errors import EmbeddingError

# Configure logging
logger = logging.getLogger(__name__)


class BaseEmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    All embedding providers must implement:
    - embed: Embed a single text string
    - embed_batch: Embed multiple texts efficiently
    - dimension: Return the embedding dimension
    """

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            List of floats representing the embedding vector

        Raises:
            EmbeddingError: upstream failure or malformed response
        """
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts, order preserved."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of embeddings produced."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the name of the embedding model."""
        pass


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """
    OpenAI embedding provider using the embeddings API.

    Models:
    - text-embedding-3-small: 1536 dims (default)
    - text-embedding-3-large: 3072 dims
    - text-embedding-ada-002: 1536 dims (legacy)
    """

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    # The API accepts up to 2048 inputs per request; stay well below it
    BATCH_SIZE = 100

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client=None,
    ):
        """
        Initialize the OpenAI embedding provider.

        Args:
            model_name: Name of the OpenAI embedding model
            api_key: OpenAI API key
            base_url: Optional OpenAI-compatible endpoint
            client: Pre-built AsyncOpenAI client (mainly for tests)
        """
        self._model_name = model_name
        self._api_key = api_key
        self._base_url = base_url
        self._client = client

        if model_name not in self.MODEL_DIMENSIONS:
            logger.warning(
                f"Unknown model {model_name}, assuming 1536 dimensions. "
                f"Known models: {list(self.MODEL_DIMENSIONS.keys())}"
            )

        logger.info(f"Initializing OpenAIEmbeddingProvider with model: {model_name}")

    def _get_client(self):
        """Get or create the async OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
            logger.info("OpenAI embeddings client initialized")
        return self._client

    async def _create(self, inputs):
        client = self._get_client()
        try:
            response = await client.embeddings.create(input=inputs, model=self._model_name)
        except Exception as e:
            logger.error(f"OpenAI embedding request failed: {e}")
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        data = getattr(response, "data", None)
        if not data:
            raise EmbeddingError("Embedding response contained no data")
        return data

    @staticmethod
    def _vector(item) -> List[float]:
        embedding = getattr(item, "embedding", None)
        if not embedding:
            raise EmbeddingError("Embedding response is missing the embedding array")
        return list(embedding)

    async def embed(self, text: str) -> List[float]:
        data = await self._create(text)
        return self._vector(data[0])

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts using OpenAI API.

        Batches of BATCH_SIZE; each batch is re-sorted by index to keep order.
        """
        if not texts:
            return []

        logger.debug(f"Embedding batch of {len(texts)} texts via OpenAI")

        all_embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.BATCH_SIZE):
            batch = texts[i:i + self.BATCH_SIZE]
            data = await self._create(batch)
            if len(data) != len(batch):
                raise EmbeddingError(
                    f"Expected {len(batch)} embeddings, received {len(data)}"
                )
            sorted_data = sorted(data, key=lambda x: x.index)
            all_embeddings.extend(self._vector(item) for item in sorted_data)

        return all_embeddings

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self._model_name, 1536)

    @property
    def model_name(self) -> str:
        return self._model_name


class LocalEmbeddingProvider(BaseEmbeddingProvider):
    """
    Local embedding provider using Sentence Transformers.

    Benefits:
    - Free to use (no API costs)
    - No internet required once the model is cached

    The model is loaded lazily on first use. Encoding is CPU-bound, so it runs
    in the default executor.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self._model_name = model_name
        self._model = None
        self._dimension: Optional[int] = None

        logger.info(f"Initializing LocalEmbeddingProvider with model: {model_name}")

    def _load_model(self):
        """Lazy load the model (only when first needed)."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            if hf_token := os.getenv("HF_TOKEN"):
                from huggingface_hub import login

                login(token=hf_token)

            logger.info(f"Loading sentence-transformers model: {self._model_name}")
            self._model = SentenceTransformer(self._model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
            logger.info(f"Model loaded. Embedding dimension: {self._dimension}")
        return self._model

    def _encode(self, texts: List[str]) -> np.ndarray:
        model = self._load_model()
        return model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=len(texts) > 10,
            batch_size=32,
        )

    async def _run(self, texts: List[str]) -> List[List[float]]:
        loop = asyncio.get_running_loop()
        try:
            embeddings = await loop.run_in_executor(None, lambda: self._encode(texts))
        except Exception as e:
            logger.error(f"Local embedding failed: {e}")
            raise EmbeddingError(f"Local embedding failed: {e}") from e
        return np.asarray(embeddings, dtype=np.float32).tolist()

    async def embed(self, text: str) -> List[float]:
        return (await self._run([text]))[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        logger.debug(f"Embedding batch of {len(texts)} texts locally")
        return await self._run(texts)

    @property
    def dimension(self) -> int:
        self._load_model()
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name


class EmbeddingService:
    """
    Main embedding service that provides a unified interface.

    This is the class that other components should use.
    It handles provider selection based on configuration.

    Example:
        service = EmbeddingService(settings.embedding)
        vector = await service.embed_query("How do I reset my password?")
        vectors = await service.embed_batch(["text1", "text2"])
    """

    def __init__(
        self,
        config: EmbeddingConfig,
        provider: Optional[str] = None,
        backend: Optional[BaseEmbeddingProvider] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            config: EmbeddingConfig instance
            provider: "openai" or "local" (default from config)
            backend: Pre-built provider, bypassing selection
        """
        self.config = config
        provider = provider or config.provider

        if backend is not None:
            self._provider = backend
        elif provider == "openai":
            self._provider = OpenAIEmbeddingProvider(
                model_name=config.openai_model,
                api_key=config.openai_api_key,
                base_url=config.openai_base_url,
            )
        elif provider == "local":
            self._provider = LocalEmbeddingProvider(model_name=config.local_model)
        else:
            raise ValueError(f"Unknown embedding provider: {provider}")

        self._provider_name = provider
        logger.info(f"EmbeddingService initialized with {provider} provider")

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Empty input is rejected by callers (the Retriever), not here.
        """
        return await self._provider.embed(text)

    async def embed_query(self, query: str) -> List[float]:
        """
        Embed a user query for retrieval.

        Semantic alias for embed, used for clarity when embedding user
        queries vs documents.
        """
        return await self.embed(query)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts, order preserved."""
        if not texts:
            return []
        return await self._provider.embed_batch(texts)

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def model_name(self) -> str:
        return self._provider.model_name

    @property
    def provider_name(self) -> str:
        return self._provider_name
