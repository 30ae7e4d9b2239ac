"""
Embedding Service

Maps summary text to a fixed-dimension vector, or to ``None`` when no
embedding is available. ``None`` is a normal outcome: the entity is stored
but stays out of similarity search until re-captured.

Backends:
- simulation: never produces an embedding (default, no external calls)
- femb: on-device embeddings via fastembed
- openai: OpenAI embeddings API (text-embedding-ada-002, 1536-dim)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from .config import EmbeddingConfig

logger = logging.getLogger("threadmind.common.embedding_service")

# OpenAI input cap (characters)
MAX_INPUT_CHARS = 8000


class EmbeddingError(Exception):
    """The embedding backend failed (distinct from 'no embedding available')."""
    pass


class EmbeddingService(ABC):
    """Common interface for all embedding backends."""

    def __init__(self, dimension: int):
        if dimension <= 0:
            raise ValueError(f"Embedding dimension must be positive, got {dimension}")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        """Fixed vector length produced by this service"""
        return self._dimension

    @property
    def mode(self) -> str:
        return "base"

    async def generate_embedding(self, text: str) -> Optional[List[float]]:
        """
        Generate an embedding for a single text.

        Returns:
            Vector of ``dimension`` floats, or None if no embedding is available

        Raises:
            EmbeddingError: If the backend call fails
        """
        results = await self.generate_batch_embeddings([text])
        return results[0]

    async def generate_batch_embeddings(self, texts: List[str]) -> List[Optional[List[float]]]:
        """
        Generate embeddings for several texts, one result per input in order.

        Empty texts map to None without calling the backend.
        """
        if not texts:
            return []

        results: List[Optional[List[float]]] = [None] * len(texts)
        positions = [i for i, t in enumerate(texts) if t and t.strip()]
        if not positions:
            return results

        vectors = await self._embed([texts[i] for i in positions])
        if len(vectors) != len(positions):
            raise EmbeddingError(
                f"Backend returned {len(vectors)} vectors for {len(positions)} inputs"
            )

        for pos, vector in zip(positions, vectors):
            results[pos] = self._check_dimension(vector) if vector is not None else None
        return results

    @abstractmethod
    async def _embed(self, texts: List[str]) -> List[Optional[List[float]]]:
        """Backend call for non-empty texts"""
        pass

    def _check_dimension(self, vector) -> List[float]:
        values = [float(v) for v in vector]
        if len(values) != self._dimension:
            raise EmbeddingError(
                f"Vector dimension mismatch: expected {self._dimension}, got {len(values)}"
            )
        return values


class SimulatedEmbeddingService(EmbeddingService):
    """
    Simulation mode: logs the request and returns no embedding.

    Captured entities are stored without vectors, which keeps the whole
    capture workflow usable without an embedding backend.
    """

    @property
    def mode(self) -> str:
        return "simulation"

    async def _embed(self, texts: List[str]) -> List[Optional[List[float]]]:
        for text in texts:
            logger.info(
                "Embedding skipped (simulation mode): length=%d preview=%r",
                len(text), text[:50],
            )
        return [None] * len(texts)


class FastEmbedService(EmbeddingService):
    """
    On-device embeddings using fastembed.

    The model is loaded lazily on first use; encoding runs in a worker
    thread so the event loop is not blocked. Vectors are L2 normalized.
    """

    def __init__(self, model: str, dimension: int):
        super().__init__(dimension)
        self._model_name = model
        self._model = None

    @property
    def mode(self) -> str:
        return "femb"

    def _load_model(self):
        if self._model is None:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Loaded fastembed model %s", self._model_name)
        return self._model

    def _encode(self, texts: List[str]) -> List[List[float]]:
        model = self._load_model()
        matrix = np.array(list(model.embed(texts)), dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return (matrix / norms).tolist()

    async def _embed(self, texts: List[str]) -> List[Optional[List[float]]]:
        try:
            return await asyncio.to_thread(self._encode, texts)
        except Exception as e:
            raise EmbeddingError(f"fastembed encoding failed: {e}") from e


class OpenAIEmbeddingService(EmbeddingService):
    """Embeddings from the OpenAI API (async client, one request per batch)."""

    def __init__(self, model: str, dimension: int, api_key: str, client=None):
        super().__init__(dimension)
        self._model_name = model
        self._api_key = api_key
        self._client = client

    @property
    def mode(self) -> str:
        return "openai"

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def _embed(self, texts: List[str]) -> List[Optional[List[float]]]:
        from openai import OpenAIError

        client = self._get_client()
        try:
            response = await client.embeddings.create(
                model=self._model_name,
                input=[t[:MAX_INPUT_CHARS] for t in texts],
            )
        except OpenAIError as e:
            raise EmbeddingError(f"OpenAI embeddings request failed: {e}") from e

        ordered = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in ordered]


def create_embedding_service(config: EmbeddingConfig) -> EmbeddingService:
    """
    Build the embedding service selected by ``config.mode``.

    Raises:
        ValueError: Unknown mode, or openai mode without an API key
    """
    mode = (config.mode or "simulation").lower()

    if mode == "simulation":
        return SimulatedEmbeddingService(dimension=config.dimension)
    if mode == "femb":
        return FastEmbedService(model=config.model, dimension=config.dimension)
    if mode == "openai":
        if not config.openai_api_key:
            raise ValueError("openai embedding mode requires OPENAI_API_KEY")
        return OpenAIEmbeddingService(
            model=config.model,
            dimension=config.dimension,
            api_key=config.openai_api_key,
        )

    raise ValueError(f"Unknown embedding mode: {config.mode}")


# Module-level singleton getter
_service_instance: Optional[EmbeddingService] = None


def get_embedding_service(config: EmbeddingConfig) -> EmbeddingService:
    """
    Get the process-wide EmbeddingService, creating it on first call.

    Args:
        config: Embedding section of the loaded configuration

    Returns:
        EmbeddingService instance
    """
    global _service_instance

    if _service_instance is None:
        _service_instance = create_embedding_service(config)
        logger.info(
            "EmbeddingService initialized (mode=%s, dimension=%d)",
            _service_instance.mode, _service_instance.dimension,
        )

    return _service_instance


def verify_dimensions(embedding_service: EmbeddingService, store) -> None:
    """
    Startup check that the provider and the store agree on vector length.

    Raises:
        ValueError: If the dimensions differ
    """
    if embedding_service.dimension != store.dimension:
        raise ValueError(
            f"Embedding dimension {embedding_service.dimension} does not match "
            f"store dimension {store.dimension}"
        )
