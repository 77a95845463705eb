"""Embedding service and model implementations."""

import asyncio
import hashlib
import logging
import math
import re
from typing import TYPE_CHECKING, Optional

from docarchive.exceptions import EmbeddingError, EmbeddingNotInitializedError

from .base import BaseEmbedding

if TYPE_CHECKING:
    from docarchive.utils.config import ArchiveConfig

logger = logging.getLogger(__name__)


class HashEmbedding(BaseEmbedding):
    """Deterministic hashed bag-of-words embedding.

    Texts sharing words land close together, which is enough for offline
    runs and tests. Vectors are L2-normalized.
    """

    _TOKEN_RE = re.compile(r"\w+")

    def __init__(self, dimension: int = 384, seed: int = 42):
        self._dimension = dimension
        self.seed = seed

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return f"hash-{self._dimension}"

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        tokens = self._TOKEN_RE.findall(text.lower()) or [text]
        for token in tokens:
            digest = hashlib.sha256(f"{self.seed}:{token}".encode()).digest()
            slot = int.from_bytes(digest[:4], "little") % self._dimension
            vector[slot] += 1.0 if digest[4] % 2 == 0 else -1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0.0:
            # Every token cancelled out; fall back to a fixed unit vector.
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    async def embed_query(self, text: str) -> list[float]:
        return self._embed(text)


class OpenAIEmbedding(BaseEmbedding):
    """OpenAI embedding model."""

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(self, model: str = "text-embedding-3-small", api_key: Optional[str] = None, batch_size: int = 100):
        self.model = model
        self.api_key = api_key
        self.batch_size = batch_size
        self._client = None

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self.model, 1536)

    @property
    def model_name(self) -> str:
        return self.model

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ImportError("OpenAI embedding requires 'openai'. pip install openai") from e
            kwargs = {}
            if self.api_key:
                kwargs["api_key"] = self.api_key
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def load(self) -> None:
        self._get_client()

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        client = self._get_client()
        all_embeddings = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]
            response = await client.embeddings.create(model=self.model, input=batch)
            all_embeddings.extend([item.embedding for item in response.data])
        return all_embeddings

    async def embed_query(self, text: str) -> list[float]:
        client = self._get_client()
        response = await client.embeddings.create(model=self.model, input=text)
        return response.data[0].embedding


class LocalEmbedding(BaseEmbedding):
    """Local embedding model using sentence-transformers."""

    MODEL_DIMENSIONS = {
        "all-MiniLM-L6-v2": 384,
        "sentence-transformers/all-MiniLM-L6-v2": 384,
        "all-mpnet-base-v2": 768,
        "sentence-transformers/all-mpnet-base-v2": 768,
    }

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2", device: Optional[str] = None, normalize: bool = True):
        self._model_name = model_name
        self.device = device
        self.normalize = normalize
        self._model = None

    @property
    def dimension(self) -> int:
        if self._model is not None:
            return self._model.get_sentence_embedding_dimension()
        return self.MODEL_DIMENSIONS.get(self._model_name, 384)

    @property
    def model_name(self) -> str:
        return self._model_name

    def _get_model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise ImportError("Local embedding requires 'sentence-transformers'. pip install sentence-transformers") from e
            self._model = SentenceTransformer(self._model_name, device=self.device)
        return self._model

    async def load(self) -> None:
        # Weights may be downloaded on first use.
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._get_model)

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        model = self._get_model()
        loop = asyncio.get_event_loop()
        embeddings = await loop.run_in_executor(
            None, lambda: model.encode(texts, normalize_embeddings=self.normalize, convert_to_numpy=True)
        )
        return embeddings.tolist()

    async def embed_query(self, text: str) -> list[float]:
        embeddings = await self.embed_documents([text])
        return embeddings[0]


class EmbeddingService:
    """Fixed-dimension embedding provider used by the store and the pipeline.

    ``initialize()`` loads the model and runs one warm-up embedding. The
    length of that vector is the dimension the chunk table is created with,
    whatever the configured default says.
    """

    WARMUP_TEXT = "Test the embedding model initialization"

    def __init__(self, model: BaseEmbedding, default_dimension: Optional[int] = None):
        self._model = model
        self._dimension = default_dimension or model.dimension
        self._ready = False

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model.model_name

    @property
    def is_initialized(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        if self._ready:
            logger.debug("Embedding model already initialized")
            return

        logger.info(f"Initializing embedding model {self.model_name}")
        try:
            await self._model.load()
            vector = await self._model.embed_query(self.WARMUP_TEXT)
        except Exception as e:
            logger.error(f"Failed to initialize embedding model {self.model_name}: {e}")
            raise EmbeddingError(f"Embedding model initialization failed: {e}") from e

        if not vector:
            raise EmbeddingError(f"Embedding model {self.model_name} returned an empty vector")
        if len(vector) != self._dimension:
            logger.info(f"Embedding dimension {len(vector)} overrides configured {self._dimension}")
        self._dimension = len(vector)
        self._ready = True
        logger.info(f"Embedding model initialized ({self._dimension} dimensions)")

    async def embed_text(self, text: str) -> list[float]:
        """Embed one text with the loaded model.

        Model failures are not retried. They surface as EmbeddingError with
        the model's own exception chained as ``__cause__``.
        """
        if not self._ready:
            raise EmbeddingNotInitializedError()
        try:
            return await self._model.embed_query(text)
        except Exception as e:
            logger.error(f"Error embedding text: {e}")
            raise EmbeddingError(f"Failed to embed text: {e}") from e

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts; errors are reported as in ``embed_text``."""
        if not self._ready:
            raise EmbeddingNotInitializedError()
        if not texts:
            return []
        try:
            return await self._model.embed_documents(texts)
        except Exception as e:
            logger.error(f"Error embedding {len(texts)} texts: {e}")
            raise EmbeddingError(f"Failed to embed texts: {e}") from e


def create_embedding_model(config: "ArchiveConfig") -> BaseEmbedding:
    """Build the embedding backend named by the configuration."""
    if config.embedding_provider == "openai":
        return OpenAIEmbedding(model=config.embedding_model, api_key=config.embedding_api_key)
    if config.embedding_provider == "hash":
        return HashEmbedding(dimension=config.embedding_dimension)
    return LocalEmbedding(model_name=config.embedding_model)
